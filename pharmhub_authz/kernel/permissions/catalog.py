"""
Permission catalog: the registry of named permission definitions.
"""

import uuid
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pharmhub_authz.kernel.events.event_store import EventStore
from pharmhub_authz.kernel.events.event_types import PermissionCreatedEvent
from pharmhub_authz.kernel.models.event_log import EventType
from pharmhub_authz.kernel.models.rbac import OperationType, Permission, ResourceType
from pharmhub_authz.kernel.permissions.cache import PermissionCache, get_permission_cache, invalidate_after_transaction
from pharmhub_authz.kernel.permissions.errors import DuplicateNameError, NotFoundError, validated
from pharmhub_authz.logging_config import get_logger
from pharmhub_authz.schemas.rbac import PermissionCreate

logger = get_logger(__name__)


class PermissionCatalog:
    """
    Create and look up permissions.

    Permissions are immutable by convention once created; the catalog
    offers no update or delete.
    """

    def __init__(self, session: AsyncSession, cache: Optional[PermissionCache] = None):
        self.session = session
        self.event_store = EventStore(session)
        self.cache = cache if cache is not None else get_permission_cache()

    async def create(
        self,
        name: str,
        resource_type: ResourceType,
        operation_type: OperationType,
        requires_approval: bool = False,
        description: Optional[str] = None,
    ) -> Permission:
        """
        Register a new permission.

        Raises:
            DuplicateNameError: If a permission with this name exists
            InvalidDataError: If the input is malformed
        """
        data = validated(
            PermissionCreate,
            name=name,
            resource_type=resource_type,
            operation_type=operation_type,
            requires_approval=requires_approval,
            description=description,
        )

        if await self._get_by_name(data.name) is not None:
            raise DuplicateNameError("Permission", data.name)

        permission = Permission(
            name=data.name,
            resource_type=data.resource_type,
            operation_type=data.operation_type,
            requires_approval=data.requires_approval,
            description=data.description,
        )
        self.session.add(permission)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent create; the unit of work rolls back
            raise DuplicateNameError("Permission", data.name) from exc

        await self.event_store.log_from_model(
            event_type=EventType.PERMISSION_CREATED,
            entity_type="permission",
            entity_id=permission.id,
            payload_model=PermissionCreatedEvent(
                name=permission.name,
                resource_type=permission.resource_type.value,
                operation_type=permission.operation_type.value,
                requires_approval=permission.requires_approval,
            ),
        )
        # A stored grant override naming this permission takes effect now
        invalidate_after_transaction(self.session, self.cache)
        logger.info("Created permission %s", permission.name, extra={"permission_id": str(permission.id)})
        return permission

    async def get(self, permission_id: uuid.UUID) -> Permission:
        permission = await self.session.get(Permission, permission_id)
        if permission is None:
            raise NotFoundError("Permission", permission_id)
        return permission

    async def find_by_name(self, name: str) -> Permission:
        permission = await self._get_by_name(name)
        if permission is None:
            raise NotFoundError("Permission", name)
        return permission

    async def find_by_names(self, names: Iterable[str]) -> Dict[str, Permission]:
        """Bulk lookup; unknown names are simply absent from the result."""
        wanted = set(names)
        if not wanted:
            return {}
        result = await self.session.execute(select(Permission).where(Permission.name.in_(wanted)))
        return {p.name: p for p in result.scalars().all()}

    async def list_all(self) -> List[Permission]:
        result = await self.session.execute(select(Permission).order_by(Permission.name))
        return list(result.scalars().all())

    async def _get_by_name(self, name: str) -> Optional[Permission]:
        result = await self.session.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one_or_none()
