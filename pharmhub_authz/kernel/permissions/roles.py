"""
Role registry: creation, lookup and permission membership of roles.
"""

import uuid
from typing import Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pharmhub_authz.config import Settings, get_settings
from pharmhub_authz.kernel.events.event_store import EventStore
from pharmhub_authz.kernel.events.event_types import RoleEvent, RolePermissionEvent
from pharmhub_authz.kernel.models.event_log import EventType
from pharmhub_authz.kernel.models.rbac import Permission, Role, RoleName
from pharmhub_authz.kernel.permissions.cache import PermissionCache, get_permission_cache, invalidate_after_transaction
from pharmhub_authz.kernel.permissions.errors import DuplicateNameError, InvalidDataError, NotFoundError, validated
from pharmhub_authz.kernel.permissions.hierarchy import RoleHierarchyService, serialized_hierarchy_mutation
from pharmhub_authz.logging_config import get_logger
from pharmhub_authz.schemas.rbac import RoleCreate, RoleUpdate

logger = get_logger(__name__)


class RoleRegistry:
    """
    Manage roles and the permissions they own directly.

    Changing a role's permission set changes the effective permissions of
    every holder, so those mutations clear the whole permission cache.
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[PermissionCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.event_store = EventStore(session)
        self.cache = cache if cache is not None else get_permission_cache()

    async def create_role(
        self,
        name: RoleName,
        precedence: int,
        permission_ids: Iterable[uuid.UUID] = (),
        system: bool = False,
        description: Optional[str] = None,
    ) -> Role:
        """
        Create a role with an initial permission set.

        Raises:
            InvalidDataError: Unknown role name or unknown permission id
            DuplicateNameError: A role with this name exists
        """
        data = validated(
            RoleCreate,
            name=name,
            precedence=precedence,
            permission_ids=list(permission_ids),
            system=system,
            description=description,
        )

        if await self._get_by_name(data.name) is not None:
            raise DuplicateNameError("Role", data.name.value)

        permissions = await self._load_permissions(data.permission_ids)
        role = Role(
            name=data.name,
            precedence=data.precedence,
            system=data.system,
            description=data.description,
            permissions=permissions,
        )
        self.session.add(role)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateNameError("Role", data.name.value) from exc

        await self.event_store.log_from_model(
            event_type=EventType.ROLE_CREATED,
            entity_type="role",
            entity_id=role.id,
            payload_model=RoleEvent(
                role=role.name.value,
                precedence=role.precedence,
                permissions=sorted(p.name for p in permissions),
            ),
        )
        logger.info(
            "Created role %s (precedence %s)", role.name.value, role.precedence,
            extra={"role_id": str(role.id)},
        )
        return role

    async def get_role(self, role_id: uuid.UUID) -> Role:
        role = await self.session.get(Role, role_id)
        if role is None:
            raise NotFoundError("Role", role_id)
        return role

    async def find_role_by_name(self, name) -> Role:
        """Look up a role by ``RoleName`` or its string value."""
        try:
            role_name = RoleName(name)
        except ValueError:
            raise NotFoundError("Role", name) from None
        role = await self._get_by_name(role_name)
        if role is None:
            raise NotFoundError("Role", role_name.value)
        return role

    async def list_roles(self) -> List[Role]:
        result = await self.session.execute(select(Role).order_by(Role.name))
        return list(result.scalars().all())

    async def update_role(
        self,
        role_id: uuid.UUID,
        description: Optional[str] = None,
        precedence: Optional[int] = None,
        permission_ids: Optional[Iterable[uuid.UUID]] = None,
    ) -> Role:
        """
        Update a role's description, precedence or full permission set.

        A precedence change must keep every hierarchy edge touching the
        role strictly precedence-increasing. It runs under the hierarchy
        write lock and commits, like any other structural change.

        Raises:
            NotFoundError: Unknown role
            InvalidDataError: Unknown permission id
            PrecedenceViolationError: The new precedence breaks an edge
        """
        data = validated(
            RoleUpdate,
            description=description,
            precedence=precedence,
            permission_ids=list(permission_ids) if permission_ids is not None else None,
        )

        permissions = None
        if data.permission_ids is not None:
            permissions = await self._load_permissions(data.permission_ids)

        if data.precedence is not None:
            async with serialized_hierarchy_mutation(self.session, self.settings):
                role = await self.get_role(role_id)
                await self.session.refresh(role)
                previous = role.precedence
                if data.precedence != previous:
                    await RoleHierarchyService(self.session, self.settings).check_incident_edges(
                        role, data.precedence
                    )
                    role.precedence = data.precedence
                await self._apply_update(role, data.description, permissions, previous)
            return role

        role = await self.get_role(role_id)
        await self._apply_update(role, data.description, permissions, role.precedence)
        return role

    async def assign_permission(self, role_id: uuid.UUID, permission_id: uuid.UUID) -> bool:
        """
        Give ``role`` the permission. Already owned is a no-op.

        Returns:
            True if the permission was added
        """
        role = await self.get_role(role_id)
        permission = await self._get_permission(permission_id)

        if permission in role.permissions:
            logger.debug("Role %s already has %s", role.name.value, permission.name)
            return False

        role.permissions.add(permission)
        await self.session.flush()
        await self._log_membership(EventType.ROLE_PERMISSION_ASSIGNED, role, permission)
        invalidate_after_transaction(self.session, self.cache)
        logger.info("Assigned permission %s to role %s", permission.name, role.name.value)
        return True

    async def revoke_permission(self, role_id: uuid.UUID, permission_id: uuid.UUID) -> bool:
        """
        Take the permission away from ``role``. Not owned is a no-op.

        Returns:
            True if the permission was removed
        """
        role = await self.get_role(role_id)
        permission = await self._get_permission(permission_id)

        if permission not in role.permissions:
            logger.debug("Role %s does not have %s", role.name.value, permission.name)
            return False

        role.permissions.discard(permission)
        await self.session.flush()
        await self._log_membership(EventType.ROLE_PERMISSION_REVOKED, role, permission)
        invalidate_after_transaction(self.session, self.cache)
        logger.info("Revoked permission %s from role %s", permission.name, role.name.value)
        return True

    async def _apply_update(
        self,
        role: Role,
        description: Optional[str],
        permissions: Optional[Set[Permission]],
        previous_precedence: int,
    ) -> None:
        if description is not None:
            role.description = description
        if permissions is not None:
            role.permissions = permissions
            invalidate_after_transaction(self.session, self.cache)
        await self.session.flush()

        await self.event_store.log_from_model(
            event_type=EventType.ROLE_UPDATED,
            entity_type="role",
            entity_id=role.id,
            payload_model=RoleEvent(
                role=role.name.value,
                precedence=role.precedence,
                previous_precedence=previous_precedence,
                permissions=sorted(p.name for p in role.permissions),
            ),
        )
        logger.info("Updated role %s", role.name.value, extra={"role_id": str(role.id)})

    async def _get_by_name(self, name: RoleName) -> Optional[Role]:
        result = await self.session.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def _get_permission(self, permission_id: uuid.UUID) -> Permission:
        permission = await self.session.get(Permission, permission_id)
        if permission is None:
            raise NotFoundError("Permission", permission_id)
        return permission

    async def _load_permissions(self, permission_ids: Iterable[uuid.UUID]) -> Set[Permission]:
        wanted = set(permission_ids)
        if not wanted:
            return set()
        result = await self.session.execute(select(Permission).where(Permission.id.in_(wanted)))
        permissions = set(result.scalars().all())
        missing = wanted - {p.id for p in permissions}
        if missing:
            raise InvalidDataError(
                "Unknown permission ids: " + ", ".join(sorted(str(pid) for pid in missing))
            )
        return permissions

    async def _log_membership(self, event_type: EventType, role: Role, permission: Permission) -> None:
        await self.event_store.log_from_model(
            event_type=event_type,
            entity_type="role",
            entity_id=role.id,
            payload_model=RolePermissionEvent(role=role.name.value, permission=permission.name),
        )
