"""Integration tests for the permission catalog and the role/group registries."""

import uuid

import pytest

from pharmhub_authz.kernel.events.event_store import EventStore
from pharmhub_authz.kernel.models.event_log import EventType
from pharmhub_authz.kernel.models.rbac import OperationType, ResourceType, RoleName
from pharmhub_authz.kernel.permissions.errors import (
    DuplicateNameError,
    InvalidDataError,
    NotFoundError,
    PrecedenceViolationError,
)


class TestPermissionCatalog:
    """Tests for creating and looking up permissions."""

    async def test_create_and_find(self, catalog):
        created = await catalog.create(
            "VIEW_PRESCRIPTION",
            ResourceType.PRESCRIPTION,
            OperationType.READ,
            description="View prescriptions",
        )

        found = await catalog.find_by_name("VIEW_PRESCRIPTION")

        assert found.id == created.id
        assert found.matches(ResourceType.PRESCRIPTION, OperationType.READ)
        assert found.requires_approval is False
        assert (await catalog.get(created.id)).name == "VIEW_PRESCRIPTION"

    async def test_duplicate_name(self, catalog):
        await catalog.create("VIEW_SALES", ResourceType.SALES, OperationType.READ)

        with pytest.raises(DuplicateNameError):
            await catalog.create("VIEW_SALES", ResourceType.REPORTS, OperationType.EXPORT)

    async def test_same_resource_and_operation_may_repeat(self, catalog):
        await catalog.create("VIEW_SALES", ResourceType.SALES, OperationType.READ)
        await catalog.create("VIEW_SALES_SUMMARY", ResourceType.SALES, OperationType.READ)

        assert [p.name for p in await catalog.list_all()] == ["VIEW_SALES", "VIEW_SALES_SUMMARY"]

    async def test_invalid_input(self, catalog):
        with pytest.raises(InvalidDataError):
            await catalog.create("", ResourceType.SALES, OperationType.READ)
        with pytest.raises(InvalidDataError):
            await catalog.create("-VIEW_SALES", ResourceType.SALES, OperationType.READ)

    async def test_unknown_lookups(self, catalog):
        with pytest.raises(NotFoundError):
            await catalog.find_by_name("NOPE")
        with pytest.raises(NotFoundError):
            await catalog.get(uuid.uuid4())

    async def test_find_by_names_skips_unknown(self, catalog, prescription_permissions):
        found = await catalog.find_by_names(["VIEW_PRESCRIPTION", "NOPE"])

        assert set(found) == {"VIEW_PRESCRIPTION"}

    async def test_creation_is_audited(self, catalog, db_session):
        permission = await catalog.create("VIEW_SALES", ResourceType.SALES, OperationType.READ)

        history = await EventStore(db_session).get_entity_history("permission", permission.id)

        assert [e.event_type for e in history] == [EventType.PERMISSION_CREATED.value]
        assert history[0].payload["resource_type"] == "SALES"


class TestRoleRegistry:
    """Tests for role creation and permission membership."""

    async def test_create_role_with_permissions(self, roles, prescription_permissions):
        view = prescription_permissions["VIEW_PRESCRIPTION"]

        role = await roles.create_role("PHARMACIST", 80, permission_ids=[view.id], system=True)

        assert role.name is RoleName.PHARMACIST
        assert role.precedence == 80
        assert role.system is True
        assert {p.name for p in role.permissions} == {"VIEW_PRESCRIPTION"}

    async def test_duplicate_role(self, roles):
        await roles.create_role(RoleName.ADMIN, 1)

        with pytest.raises(DuplicateNameError):
            await roles.create_role(RoleName.ADMIN, 2)

    async def test_name_outside_enumeration(self, roles):
        with pytest.raises(InvalidDataError):
            await roles.create_role("JANITOR", 50)

    async def test_unknown_permission_id(self, roles):
        with pytest.raises(InvalidDataError):
            await roles.create_role(RoleName.ADMIN, 1, permission_ids=[uuid.uuid4()])

    async def test_precedence_need_not_be_unique(self, roles):
        await roles.create_role(RoleName.SALESMAN, 80)
        await roles.create_role(RoleName.PHARMACIST, 80)

        assert len(await roles.list_roles()) == 2

    async def test_assign_and_revoke_are_idempotent(self, roles, prescription_permissions):
        role = await roles.create_role(RoleName.PHARMACIST, 80)
        view = prescription_permissions["VIEW_PRESCRIPTION"]

        assert await roles.assign_permission(role.id, view.id) is True
        assert await roles.assign_permission(role.id, view.id) is False
        assert {p.name for p in role.permissions} == {"VIEW_PRESCRIPTION"}

        assert await roles.revoke_permission(role.id, view.id) is True
        assert await roles.revoke_permission(role.id, view.id) is False
        assert role.permissions == set()

    async def test_assign_unknown_ids(self, roles, prescription_permissions):
        role = await roles.create_role(RoleName.PHARMACIST, 80)

        with pytest.raises(NotFoundError):
            await roles.assign_permission(uuid.uuid4(), prescription_permissions["VIEW_SALES"].id)
        with pytest.raises(NotFoundError):
            await roles.assign_permission(role.id, uuid.uuid4())

    async def test_find_role_by_name(self, roles):
        admin = await roles.create_role(RoleName.ADMIN, 1)

        assert (await roles.find_role_by_name("ADMIN")).id == admin.id
        with pytest.raises(NotFoundError):
            await roles.find_role_by_name(RoleName.USER)
        with pytest.raises(NotFoundError):
            await roles.find_role_by_name("JANITOR")

    async def test_update_replaces_permission_set(self, roles, prescription_permissions):
        role = await roles.create_role(
            RoleName.ADMIN, 1, permission_ids=[prescription_permissions["VIEW_SALES"].id]
        )

        updated = await roles.update_role(
            role.id,
            description="All prescription powers",
            permission_ids=[
                prescription_permissions["CREATE_PRESCRIPTION"].id,
                prescription_permissions["MANAGE_PRESCRIPTION"].id,
            ],
        )

        assert updated.description == "All prescription powers"
        assert {p.name for p in updated.permissions} == {"CREATE_PRESCRIPTION", "MANAGE_PRESCRIPTION"}

    async def test_precedence_update_must_respect_edges(self, chain, roles):
        proprietor = chain[RoleName.PROPRIETOR]

        with pytest.raises(PrecedenceViolationError):
            await roles.update_role(proprietor.id, precedence=0)  # stronger than ADMIN(1)
        with pytest.raises(PrecedenceViolationError):
            await roles.update_role(proprietor.id, precedence=3)  # equal to PHARMACIST(3)

        user = await roles.update_role(chain[RoleName.USER].id, precedence=4)
        assert user.precedence == 4

    async def test_precedence_update_without_edges(self, roles):
        role = await roles.create_role(RoleName.STUDENT, 90)

        updated = await roles.update_role(role.id, precedence=95)

        assert updated.precedence == 95

    async def test_permission_change_clears_cache(self, roles, cache, prescription_permissions):
        role = await roles.create_role(RoleName.PHARMACIST, 80)
        user_id = uuid.uuid4()
        cache.put(user_id, frozenset(), cache.ticket(user_id))

        await roles.assign_permission(role.id, prescription_permissions["VIEW_SALES"].id)

        assert cache.get(user_id) is None


class TestGroupRegistry:
    """Tests for group creation and role membership."""

    async def test_create_group(self, groups, chain_roles):
        group = await groups.create_group(
            "PHARMACY_STAFF",
            role_ids=[chain_roles[RoleName.PHARMACIST].id],
            description="Staff",
        )

        assert {r.name for r in group.roles} == {RoleName.PHARMACIST}
        assert (await groups.find_group_by_name("PHARMACY_STAFF")).id == group.id

    async def test_duplicate_group(self, groups):
        await groups.create_group("EDUCATION")

        with pytest.raises(DuplicateNameError):
            await groups.create_group("EDUCATION")

    async def test_unknown_role_in_new_group(self, groups):
        with pytest.raises(InvalidDataError):
            await groups.create_group("EDUCATION", role_ids=[uuid.uuid4()])

    async def test_membership_is_idempotent(self, groups, chain_roles):
        group = await groups.create_group("PHARMACY_MANAGEMENT")
        proprietor = chain_roles[RoleName.PROPRIETOR]

        assert await groups.add_role_to_group(group.id, proprietor.id) is True
        assert await groups.add_role_to_group(group.id, proprietor.id) is False
        assert await groups.remove_role_from_group(group.id, proprietor.id) is True
        assert await groups.remove_role_from_group(group.id, proprietor.id) is False
        assert group.roles == set()

    async def test_unknown_ids(self, groups, chain_roles):
        group = await groups.create_group("EDUCATION")

        with pytest.raises(NotFoundError):
            await groups.add_role_to_group(uuid.uuid4(), chain_roles[RoleName.USER].id)
        with pytest.raises(NotFoundError):
            await groups.add_role_to_group(group.id, uuid.uuid4())
        with pytest.raises(NotFoundError):
            await groups.find_group_by_name("Nobody")

    async def test_list_groups(self, groups):
        await groups.create_group("SuperAdmins")
        await groups.create_group("Administrators")

        assert [g.name for g in await groups.list_groups()] == ["Administrators", "SuperAdmins"]
