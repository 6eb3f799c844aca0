"""
User assignment service: direct roles, direct groups and permission
overrides of a user.

Every mutation drops the user's cached permission set. Overrides are
accepted as :class:`GrantOverride` / :class:`DenyOverride` values or as
legacy tokens and are stored in their token form.
"""

import uuid
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pharmhub_authz.kernel.events.event_store import EventStore
from pharmhub_authz.kernel.events.event_types import UserAssignmentEvent
from pharmhub_authz.kernel.models.event_log import EventType
from pharmhub_authz.kernel.models.rbac import Group, Role, RoleName
from pharmhub_authz.kernel.models.user import User, UserPermissionOverride
from pharmhub_authz.kernel.permissions.cache import PermissionCache, get_permission_cache, invalidate_after_transaction
from pharmhub_authz.kernel.permissions.errors import DuplicateNameError, NotFoundError, validated
from pharmhub_authz.kernel.permissions.overrides import PermissionOverride, parse_override, stored_overrides
from pharmhub_authz.logging_config import get_logger
from pharmhub_authz.schemas.rbac import UserCreate

logger = get_logger(__name__)


class UserAssignmentService:
    """
    Administrative API for what a user holds.

    Usage:
        assignments = UserAssignmentService(session)
        await assignments.assign_role(user.id, pharmacist.id)
        await assignments.add_override(user.id, deny("APPROVE_PRESCRIPTION"))
    """

    def __init__(self, session: AsyncSession, cache: Optional[PermissionCache] = None):
        self.session = session
        self.event_store = EventStore(session)
        self.cache = cache if cache is not None else get_permission_cache()

    async def create_user(self, username: str, email: Optional[str] = None) -> User:
        data = validated(UserCreate, username=username, email=email)

        existing = await self.session.execute(select(User).where(User.username == data.username))
        if existing.scalar_one_or_none() is not None:
            raise DuplicateNameError("User", data.username)

        user = User(username=data.username, email=data.email, roles=set(), groups=set(), override_entries=[])
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateNameError("User", data.username) from exc

        await self._log(EventType.USER_CREATED, user)
        logger.info("Created user %s", user.username, extra={"user_id": str(user.id)})
        return user

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def assign_role(self, user_id: uuid.UUID, role_id: uuid.UUID) -> bool:
        user = await self.get_user(user_id)
        role = await self._get(Role, role_id)
        if role in user.roles:
            logger.debug("User %s already has role %s", user.username, role.name.value)
            return False

        user.roles.add(role)
        await self._record(EventType.USER_ROLE_ASSIGNED, user, role=role.name.value)
        logger.info("Assigned role %s to user %s", role.name.value, user.username)
        return True

    async def remove_role(self, user_id: uuid.UUID, role_id: uuid.UUID) -> bool:
        user = await self.get_user(user_id)
        role = await self._get(Role, role_id)
        if role not in user.roles:
            logger.debug("User %s does not have role %s", user.username, role.name.value)
            return False

        user.roles.discard(role)
        await self._record(EventType.USER_ROLE_REMOVED, user, role=role.name.value)
        logger.info("Removed role %s from user %s", role.name.value, user.username)
        return True

    async def assign_group(self, user_id: uuid.UUID, group_id: uuid.UUID) -> bool:
        user = await self.get_user(user_id)
        group = await self._get(Group, group_id)
        if group in user.groups:
            logger.debug("User %s already in group %s", user.username, group.name)
            return False

        user.groups.add(group)
        await self._record(EventType.USER_GROUP_ASSIGNED, user, group=group.name)
        logger.info("Added user %s to group %s", user.username, group.name)
        return True

    async def remove_group(self, user_id: uuid.UUID, group_id: uuid.UUID) -> bool:
        user = await self.get_user(user_id)
        group = await self._get(Group, group_id)
        if group not in user.groups:
            logger.debug("User %s not in group %s", user.username, group.name)
            return False

        user.groups.discard(group)
        await self._record(EventType.USER_GROUP_REMOVED, user, group=group.name)
        logger.info("Removed user %s from group %s", user.username, group.name)
        return True

    async def add_override(self, user_id: uuid.UUID, override: Union[PermissionOverride, str]) -> bool:
        """
        Store a grant or deny override.

        Names are not checked against the catalog: a deny of an unknown
        permission is valid, and a grant of one has no effect until the
        permission exists.
        """
        user = await self.get_user(user_id)
        token = self._token(override)
        if token in user.permission_overrides:
            logger.debug("User %s already has override %s", user.username, token)
            return False

        user.override_entries.append(UserPermissionOverride(user_id=user.id, token=token))
        await self._record(EventType.USER_OVERRIDE_ADDED, user, override=token)
        logger.info("Added override %s for user %s", token, user.username)
        return True

    async def remove_override(self, user_id: uuid.UUID, override: Union[PermissionOverride, str]) -> bool:
        user = await self.get_user(user_id)
        token = self._token(override)
        entry = next((e for e in user.override_entries if e.token == token), None)
        if entry is None:
            logger.debug("User %s has no override %s", user.username, token)
            return False

        user.override_entries.remove(entry)
        await self._record(EventType.USER_OVERRIDE_REMOVED, user, override=token)
        logger.info("Removed override %s for user %s", token, user.username)
        return True

    async def get_overrides(self, user_id: uuid.UUID) -> List[PermissionOverride]:
        user = await self.get_user(user_id)
        return list(stored_overrides(sorted(user.permission_overrides)))

    async def list_users_with_role(self, role_name) -> List[User]:
        """Users holding ``role_name`` directly, not through a group."""
        role_name = RoleName(role_name)
        result = await self.session.execute(
            select(User).where(User.roles.any(Role.name == role_name)).order_by(User.username)
        )
        return list(result.scalars().all())

    async def list_users_in_group(self, group_name: str) -> List[User]:
        result = await self.session.execute(
            select(User).where(User.groups.any(Group.name == group_name)).order_by(User.username)
        )
        return list(result.scalars().all())

    def invalidate_user(self, user_id: uuid.UUID) -> None:
        """Drop the cached permission set of ``user_id``."""
        self.cache.invalidate_user(user_id)

    @staticmethod
    def _token(override: Union[PermissionOverride, str]) -> str:
        if isinstance(override, str):
            override = parse_override(override)
        return override.token

    async def _get(self, model, entity_id: uuid.UUID):
        entity = await self.session.get(model, entity_id)
        if entity is None:
            raise NotFoundError(model.__name__, entity_id)
        return entity

    async def _record(self, event_type: EventType, user: User, **payload) -> None:
        await self.session.flush()
        await self._log(event_type, user, **payload)
        invalidate_after_transaction(self.session, self.cache, user.id)

    async def _log(self, event_type: EventType, user: User, **payload) -> None:
        await self.event_store.log_from_model(
            event_type=event_type,
            entity_type="user",
            entity_id=user.id,
            payload_model=UserAssignmentEvent(username=user.username, **payload),
        )
