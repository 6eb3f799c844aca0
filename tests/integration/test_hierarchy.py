"""Integration tests for the role hierarchy service."""

import uuid

import pytest
from sqlalchemy import select

from pharmhub_authz.kernel.models.event_log import EventLog, EventType
from pharmhub_authz.kernel.models.rbac import RoleName
from pharmhub_authz.kernel.permissions.errors import (
    InvalidHierarchyError,
    NotFoundError,
    PrecedenceViolationError,
    SelfReferenceError,
)


def _names(roles):
    return {role.name for role in roles}


class TestChainScenario:
    """ADMIN(1) -> PROPRIETOR(2) -> PHARMACIST(3) -> USER(5)."""

    async def test_all_child_roles_of_admin(self, chain, hierarchy):
        children = await hierarchy.get_all_child_roles(chain[RoleName.ADMIN].id)

        assert _names(children) == {RoleName.PROPRIETOR, RoleName.PHARMACIST, RoleName.USER}

    async def test_child_roles_exclude_the_role_itself(self, chain, hierarchy):
        children = await hierarchy.get_all_child_roles(chain[RoleName.PHARMACIST].id)

        assert _names(children) == {RoleName.USER}

    async def test_leaf_has_no_children(self, chain, hierarchy):
        assert await hierarchy.get_all_child_roles(chain[RoleName.USER].id) == set()

    async def test_closing_the_chain_is_a_cycle(self, chain, hierarchy):
        """PHARMACIST -> ADMIN would loop back; reported as a cycle, not a precedence problem."""
        with pytest.raises(InvalidHierarchyError):
            await hierarchy.add_child_role(chain[RoleName.PHARMACIST].id, chain[RoleName.ADMIN].id)

    async def test_reversed_edge_is_a_cycle(self, chain, hierarchy):
        with pytest.raises(InvalidHierarchyError):
            await hierarchy.add_child_role(chain[RoleName.USER].id, chain[RoleName.PHARMACIST].id)

    async def test_shortcut_edge_is_allowed(self, chain, hierarchy):
        assert await hierarchy.add_child_role(chain[RoleName.ADMIN].id, chain[RoleName.USER].id) is True

        children = await hierarchy.get_all_child_roles(chain[RoleName.ADMIN].id)
        assert _names(children) == {RoleName.PROPRIETOR, RoleName.PHARMACIST, RoleName.USER}

    async def test_parents(self, chain, hierarchy):
        parents = await hierarchy.get_all_parent_roles(chain[RoleName.PHARMACIST].id)

        assert _names(parents) == {RoleName.ADMIN, RoleName.PROPRIETOR}

    async def test_direct_children(self, chain, hierarchy):
        direct = await hierarchy.get_direct_child_roles(chain[RoleName.ADMIN].id)

        assert _names(direct) == {RoleName.PROPRIETOR}

    async def test_can_manage(self, chain, hierarchy):
        assert await hierarchy.can_manage(chain[RoleName.ADMIN].id, chain[RoleName.USER].id) is True
        assert await hierarchy.can_manage(chain[RoleName.USER].id, chain[RoleName.ADMIN].id) is False
        assert await hierarchy.can_manage(chain[RoleName.ADMIN].id, chain[RoleName.ADMIN].id) is False


class TestAddChildRoleValidation:
    """Each rejection names the right error and leaves the graph alone."""

    async def test_precedence_only_violation(self, chain_roles, roles, hierarchy):
        """No path between the two roles, but the parent is weaker."""
        salesman = await roles.create_role(RoleName.SALESMAN, 4)

        with pytest.raises(PrecedenceViolationError):
            await hierarchy.add_child_role(salesman.id, chain_roles[RoleName.PHARMACIST].id)

    async def test_equal_precedence_is_a_violation(self, chain_roles, roles, hierarchy):
        technician = await roles.create_role(RoleName.TECHNICIAN, 3)

        with pytest.raises(PrecedenceViolationError):
            await hierarchy.add_child_role(technician.id, chain_roles[RoleName.PHARMACIST].id)
        with pytest.raises(PrecedenceViolationError):
            await hierarchy.add_child_role(chain_roles[RoleName.PHARMACIST].id, technician.id)

    async def test_self_reference(self, chain_roles, hierarchy):
        admin_id = chain_roles[RoleName.ADMIN].id

        with pytest.raises(SelfReferenceError):
            await hierarchy.add_child_role(admin_id, admin_id)

    async def test_unknown_parent(self, chain_roles, hierarchy):
        with pytest.raises(NotFoundError):
            await hierarchy.add_child_role(uuid.uuid4(), chain_roles[RoleName.USER].id)

    async def test_unknown_child(self, chain_roles, hierarchy):
        with pytest.raises(NotFoundError):
            await hierarchy.add_child_role(chain_roles[RoleName.ADMIN].id, uuid.uuid4())

    async def test_not_found_comes_before_self_reference(self, hierarchy):
        missing = uuid.uuid4()

        with pytest.raises(NotFoundError):
            await hierarchy.add_child_role(missing, missing)

    async def test_failed_calls_leave_graph_unchanged(self, chain, roles, hierarchy):
        before = await hierarchy.get_edges()
        salesman = await roles.create_role(RoleName.SALESMAN, 4)

        for parent, child, error in [
            (chain[RoleName.PHARMACIST].id, chain[RoleName.ADMIN].id, InvalidHierarchyError),
            (salesman.id, chain[RoleName.PHARMACIST].id, PrecedenceViolationError),
            (chain[RoleName.ADMIN].id, chain[RoleName.ADMIN].id, SelfReferenceError),
            (chain[RoleName.ADMIN].id, uuid.uuid4(), NotFoundError),
        ]:
            with pytest.raises(error):
                await hierarchy.add_child_role(parent, child)

        assert await hierarchy.get_edges() == before


class TestIdempotence:
    async def test_adding_existing_edge_is_a_no_op(self, chain_roles, hierarchy, db_session):
        admin, proprietor = chain_roles[RoleName.ADMIN], chain_roles[RoleName.PROPRIETOR]

        assert await hierarchy.add_child_role(admin.id, proprietor.id) is True
        assert await hierarchy.add_child_role(admin.id, proprietor.id) is False

        edges = await hierarchy.get_edges()
        assert edges == {admin.id: {proprietor.id}}

        result = await db_session.execute(
            select(EventLog).where(EventLog.event_type == EventType.HIERARCHY_EDGE_ADDED.value)
        )
        assert len(result.scalars().all()) == 1

    async def test_remove_edge(self, chain, hierarchy):
        admin, proprietor = chain[RoleName.ADMIN], chain[RoleName.PROPRIETOR]

        assert await hierarchy.remove_child_role(admin.id, proprietor.id) is True
        assert await hierarchy.remove_child_role(admin.id, proprietor.id) is False

        assert await hierarchy.get_all_child_roles(admin.id) == set()

    async def test_remove_does_not_cascade(self, chain, hierarchy):
        await hierarchy.remove_child_role(chain[RoleName.ADMIN].id, chain[RoleName.PROPRIETOR].id)

        children = await hierarchy.get_all_child_roles(chain[RoleName.PROPRIETOR].id)
        assert _names(children) == {RoleName.PHARMACIST, RoleName.USER}

    async def test_removed_edge_can_be_reversed_only_if_precedence_allows(self, chain, hierarchy):
        pharmacist, user = chain[RoleName.PHARMACIST], chain[RoleName.USER]
        await hierarchy.remove_child_role(pharmacist.id, user.id)

        with pytest.raises(PrecedenceViolationError):
            await hierarchy.add_child_role(user.id, pharmacist.id)

    async def test_remove_unknown_role(self, chain_roles, hierarchy):
        with pytest.raises(NotFoundError):
            await hierarchy.remove_child_role(chain_roles[RoleName.ADMIN].id, uuid.uuid4())


class TestRolesByPrecedence:
    async def test_ascending_with_name_tie_break(self, chain_roles, roles, hierarchy):
        await roles.create_role(RoleName.SALESMAN, 3)
        await roles.create_role(RoleName.TECHNICIAN, 3)

        ordered = await hierarchy.get_roles_by_precedence()

        assert [role.name for role in ordered] == [
            RoleName.ADMIN,
            RoleName.PROPRIETOR,
            RoleName.PHARMACIST,
            RoleName.SALESMAN,
            RoleName.TECHNICIAN,
            RoleName.USER,
        ]

    async def test_empty(self, hierarchy):
        assert await hierarchy.get_roles_by_precedence() == []


class TestHierarchyAudit:
    async def test_edge_events_carry_both_roles(self, chain_roles, hierarchy, db_session):
        admin, user = chain_roles[RoleName.ADMIN], chain_roles[RoleName.USER]

        await hierarchy.add_child_role(admin.id, user.id)
        await hierarchy.remove_child_role(admin.id, user.id)

        result = await db_session.execute(select(EventLog).where(EventLog.entity_id == admin.id))
        events = {e.event_type: e for e in result.scalars().all() if e.event_type.startswith("hierarchy.")}

        assert set(events) == {"hierarchy.edge_added", "hierarchy.edge_removed"}
        added = events["hierarchy.edge_added"]
        assert added.payload["parent_role"] == "ADMIN"
        assert added.payload["child_role"] == "USER"
        assert added.payload["child_role_id"] == str(user.id)
