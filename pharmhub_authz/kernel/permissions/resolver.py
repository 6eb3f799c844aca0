"""
Effective permission resolution.

A user's effective permissions are the union of the permissions owned
directly by their roles and by the roles of their groups, adjusted by the
user's override tokens. The role hierarchy plays no part: holding a parent
role does not confer its children's permissions.

The computation itself is a pure function over an immutable snapshot of
the user's grants, loaded in one read. The resolver never mutates kernel
state; with ``audit_access_decisions`` enabled it appends one audit event
per ``validate_access`` call.
"""

import uuid
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Mapping, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pharmhub_authz.config import Settings, get_settings
from pharmhub_authz.kernel.events.event_store import EventStore
from pharmhub_authz.kernel.events.event_types import AccessDecisionEvent
from pharmhub_authz.kernel.models.event_log import EventType
from pharmhub_authz.kernel.models.rbac import OperationType, Permission, ResourceType, Role, RoleName
from pharmhub_authz.kernel.models.user import User
from pharmhub_authz.kernel.permissions.cache import (
    PermissionCache,
    PermissionKey,
    get_permission_cache,
    has_pending_changes,
)
from pharmhub_authz.kernel.permissions.errors import NotFoundError
from pharmhub_authz.kernel.permissions.overrides import split_overrides
from pharmhub_authz.logging_config import get_logger
from pharmhub_authz.schemas.rbac import AccessProfile, PermissionResponse

logger = get_logger(__name__)


@dataclass(frozen=True)
class UserGrantSnapshot:
    """Everything resolution needs about one user, detached from the session."""

    user_id: uuid.UUID
    username: str
    role_names: FrozenSet[RoleName]
    group_names: FrozenSet[str]
    role_permissions: FrozenSet[PermissionKey]
    override_tokens: FrozenSet[str]


def compute_effective_permissions(
    role_permissions: Iterable[PermissionKey],
    override_tokens: Iterable[str],
    lookup: Callable[[Iterable[str]], Mapping[str, PermissionKey]],
) -> FrozenSet[PermissionKey]:
    """
    Apply overrides to the union of role permissions.

    Grants are collected first and denies applied last, so the result does
    not depend on token order and a deny always beats a grant of the same
    name. ``lookup`` maps granted names to catalog permissions; names it
    does not return are ignored.
    """
    effective: Set[PermissionKey] = set(role_permissions)
    granted, denied = split_overrides(override_tokens)

    if granted:
        found = lookup(granted)
        for name in sorted(granted):
            permission = found.get(name)
            if permission is None:
                logger.debug("Grant override %s names no known permission", name)
                continue
            effective.add(permission)

    if denied:
        before = len(effective)
        effective = {p for p in effective if p.name not in denied}
        logger.debug("Deny overrides %s removed %d permission(s)", sorted(denied), before - len(effective))

    return frozenset(effective)


class EffectivePermissionResolver:
    """
    Decision and query API over the user assignment surface.

    Usage:
        resolver = EffectivePermissionResolver(session)
        if await resolver.validate_access(user.id, ResourceType.PRESCRIPTION, OperationType.APPROVE):
            ...
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: Optional[PermissionCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else get_permission_cache()
        self.event_store = EventStore(session)

    async def resolve(self, user_id: uuid.UUID) -> Set[PermissionKey]:
        """
        Return the user's effective permission set.

        Raises:
            NotFoundError: Unknown user
        """
        return set(await self._effective(user_id))

    async def validate_access(
        self,
        user_id: uuid.UUID,
        resource_type: ResourceType,
        operation_type: OperationType,
        resource_id: Optional[str] = None,
    ) -> bool:
        """
        True iff some effective permission matches both ``resource_type``
        and ``operation_type``. ``resource_id`` only appears in the log and
        audit record.

        Raises:
            NotFoundError: Unknown user
        """
        resource_type = ResourceType(resource_type)
        operation_type = OperationType(operation_type)
        permissions = await self._effective(user_id)
        granted = any(
            p.resource_type == resource_type and p.operation_type == operation_type
            for p in permissions
        )

        logger.debug(
            "Access %s for %s:%s",
            "granted" if granted else "denied", resource_type.value, operation_type.value,
            extra={
                "user_id": str(user_id),
                "resource_id": resource_id,
                "granted": granted,
            },
        )
        if self.settings.audit_access_decisions:
            await self.event_store.log_from_model(
                event_type=EventType.ACCESS_GRANTED if granted else EventType.ACCESS_DENIED,
                entity_type="user",
                entity_id=user_id,
                payload_model=AccessDecisionEvent(
                    resource_type=resource_type.value,
                    operation_type=operation_type.value,
                    resource_id=None if resource_id is None else str(resource_id),
                    granted=granted,
                ),
                outcome="GRANTED" if granted else "DENIED",
            )
        return granted

    async def has_permission(self, user_id: uuid.UUID, permission_name: str) -> bool:
        return any(p.name == permission_name for p in await self._effective(user_id))

    async def get_user_roles(self, user_id: uuid.UUID) -> Set[Role]:
        """Direct roles plus roles inherited through groups."""
        user = await self._get_user(user_id)
        return self._collect_roles(user)

    async def has_role(self, user_id: uuid.UUID, role_name) -> bool:
        role_name = RoleName(role_name)
        return any(role.name == role_name for role in await self.get_user_roles(user_id))

    async def get_access_profile(self, user_id: uuid.UUID) -> AccessProfile:
        snapshot = await self.load_snapshot(user_id)
        permissions = await self._effective(user_id)
        return AccessProfile(
            user_id=snapshot.user_id,
            username=snapshot.username,
            roles=sorted(name.value for name in snapshot.role_names),
            groups=sorted(snapshot.group_names),
            permissions=[
                PermissionResponse(
                    id=p.id,
                    name=p.name,
                    resource_type=p.resource_type,
                    operation_type=p.operation_type,
                )
                for p in sorted(permissions, key=lambda p: p.name)
            ],
            overrides=sorted(snapshot.override_tokens),
        )

    async def load_snapshot(self, user_id: uuid.UUID) -> UserGrantSnapshot:
        """Read the user's roles, groups and overrides in one consistent pass."""
        user = await self._get_user(user_id)
        roles = self._collect_roles(user)
        return UserGrantSnapshot(
            user_id=user.id,
            username=user.username,
            role_names=frozenset(role.name for role in roles),
            group_names=frozenset(group.name for group in user.groups),
            role_permissions=frozenset(
                PermissionKey.of(permission) for role in roles for permission in role.permissions
            ),
            override_tokens=frozenset(user.permission_overrides),
        )

    async def _effective(self, user_id: uuid.UUID) -> FrozenSet[PermissionKey]:
        # Uncommitted changes in this session stay out of the shared cache
        use_cache = not has_pending_changes(self.session)
        if use_cache:
            cached = self.cache.get(user_id)
            if cached is not None:
                return cached

        ticket = self.cache.ticket(user_id)
        snapshot = await self.load_snapshot(user_id)

        granted, _ = split_overrides(snapshot.override_tokens)
        catalog = await self._lookup_permissions(granted)
        effective = compute_effective_permissions(
            snapshot.role_permissions,
            snapshot.override_tokens,
            lambda names: {name: catalog[name] for name in names if name in catalog},
        )
        if use_cache:
            self.cache.put(user_id, effective, ticket)
        return effective

    async def _lookup_permissions(self, names: Iterable[str]) -> Mapping[str, PermissionKey]:
        wanted = set(names)
        if not wanted:
            return {}
        result = await self.session.execute(select(Permission).where(Permission.name.in_(wanted)))
        return {p.name: PermissionKey.of(p) for p in result.scalars().all()}

    async def _get_user(self, user_id: uuid.UUID) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    @staticmethod
    def _collect_roles(user: User) -> Set[Role]:
        roles = set(user.roles)
        for group in user.groups:
            roles.update(group.roles)
        return roles
