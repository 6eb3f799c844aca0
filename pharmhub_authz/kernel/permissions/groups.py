"""
Group registry. A group grants all of its roles to each member.
"""

import uuid
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pharmhub_authz.kernel.events.event_store import EventStore
from pharmhub_authz.kernel.events.event_types import GroupEvent
from pharmhub_authz.kernel.models.event_log import EventType
from pharmhub_authz.kernel.models.rbac import Group, Role
from pharmhub_authz.kernel.permissions.cache import PermissionCache, get_permission_cache, invalidate_after_transaction
from pharmhub_authz.kernel.permissions.errors import DuplicateNameError, InvalidDataError, NotFoundError, validated
from pharmhub_authz.logging_config import get_logger
from pharmhub_authz.schemas.rbac import GroupCreate

logger = get_logger(__name__)


class GroupRegistry:
    def __init__(self, session: AsyncSession, cache: Optional[PermissionCache] = None):
        self.session = session
        self.event_store = EventStore(session)
        self.cache = cache if cache is not None else get_permission_cache()

    async def create_group(
        self,
        name: str,
        role_ids: Iterable[uuid.UUID] = (),
        description: Optional[str] = None,
    ) -> Group:
        """
        Create a group with an initial set of roles.

        Raises:
            DuplicateNameError: A group with this name exists
            InvalidDataError: Empty name or unknown role id
        """
        data = validated(GroupCreate, name=name, role_ids=list(role_ids), description=description)

        if await self._get_by_name(data.name) is not None:
            raise DuplicateNameError("Group", data.name)

        wanted = set(data.role_ids)
        roles = set()
        if wanted:
            result = await self.session.execute(select(Role).where(Role.id.in_(wanted)))
            roles = set(result.scalars().all())
            missing = wanted - {r.id for r in roles}
            if missing:
                raise InvalidDataError(
                    "Unknown role ids: " + ", ".join(sorted(str(rid) for rid in missing))
                )

        group = Group(name=data.name, description=data.description, roles=roles)
        self.session.add(group)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise DuplicateNameError("Group", data.name) from exc

        await self.event_store.log_from_model(
            event_type=EventType.GROUP_CREATED,
            entity_type="group",
            entity_id=group.id,
            payload_model=GroupEvent(group=group.name, roles=sorted(r.name.value for r in roles)),
        )
        logger.info("Created group %s", group.name, extra={"group_id": str(group.id)})
        return group

    async def get_group(self, group_id: uuid.UUID) -> Group:
        group = await self.session.get(Group, group_id)
        if group is None:
            raise NotFoundError("Group", group_id)
        return group

    async def find_group_by_name(self, name: str) -> Group:
        group = await self._get_by_name(name)
        if group is None:
            raise NotFoundError("Group", name)
        return group

    async def list_groups(self) -> List[Group]:
        result = await self.session.execute(select(Group).order_by(Group.name))
        return list(result.scalars().all())

    async def add_role_to_group(self, group_id: uuid.UUID, role_id: uuid.UUID) -> bool:
        """Returns True if the role was added, False if it was already a member."""
        group = await self.get_group(group_id)
        role = await self._get_role(role_id)

        if role in group.roles:
            logger.debug("Group %s already has role %s", group.name, role.name.value)
            return False

        group.roles.add(role)
        await self.session.flush()
        await self._log_membership(EventType.GROUP_ROLE_ADDED, group, role)
        invalidate_after_transaction(self.session, self.cache)
        logger.info("Added role %s to group %s", role.name.value, group.name)
        return True

    async def remove_role_from_group(self, group_id: uuid.UUID, role_id: uuid.UUID) -> bool:
        """Returns True if the role was removed, False if it was not a member."""
        group = await self.get_group(group_id)
        role = await self._get_role(role_id)

        if role not in group.roles:
            logger.debug("Group %s does not have role %s", group.name, role.name.value)
            return False

        group.roles.discard(role)
        await self.session.flush()
        await self._log_membership(EventType.GROUP_ROLE_REMOVED, group, role)
        invalidate_after_transaction(self.session, self.cache)
        logger.info("Removed role %s from group %s", role.name.value, group.name)
        return True

    async def _get_by_name(self, name: str) -> Optional[Group]:
        result = await self.session.execute(select(Group).where(Group.name == name))
        return result.scalar_one_or_none()

    async def _get_role(self, role_id: uuid.UUID) -> Role:
        role = await self.session.get(Role, role_id)
        if role is None:
            raise NotFoundError("Role", role_id)
        return role

    async def _log_membership(self, event_type: EventType, group: Group, role: Role) -> None:
        await self.event_store.log_from_model(
            event_type=event_type,
            entity_type="group",
            entity_id=group.id,
            payload_model=GroupEvent(group=group.name, roles=[role.name.value]),
        )
