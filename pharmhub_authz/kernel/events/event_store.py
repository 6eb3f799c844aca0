"""
Event Store service for append-only security audit logging.

All administrative mutations MUST be logged here BEFORE commit.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import select, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from pharmhub_authz.kernel.models.event_log import EventLog, EventType
from pharmhub_authz.logging_config import get_actor_id, get_request_id


class EventStore:
    """
    Service for managing the immutable event log.

    Usage:
        event_store = EventStore(session)
        await event_store.log(
            event_type=EventType.HIERARCHY_EDGE_ADDED,
            entity_type="role",
            entity_id=parent.id,
            payload={"child_role_id": child.id},
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
        payload: Optional[Dict[str, Any]] = None,
        outcome: str = "SUCCESS",
    ) -> EventLog:
        """
        Log an event to the immutable audit log.

        This MUST be called before committing any state change.

        Args:
            event_type: The type of event
            entity_type: The type of entity (permission, role, group, user)
            entity_id: The ID of the entity
            user_id: Acting user; defaults to the actor bound in context
            payload: Additional event data
            outcome: SUCCESS, GRANTED or DENIED

        Returns:
            The created EventLog record
        """
        if payload:
            payload = self._serialize_payload(payload)

        event = EventLog(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id if user_id is not None else get_actor_id(),
            payload=payload or {},
            outcome=outcome,
            request_id=get_request_id(),
        )

        self.session.add(event)
        # Note: the unit of work flushes/commits after all operations
        return event

    async def log_from_model(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: uuid.UUID,
        payload_model: BaseModel,
        user_id: Optional[uuid.UUID] = None,
        outcome: str = "SUCCESS",
    ) -> EventLog:
        """Log an event using a Pydantic model as payload."""
        payload = payload_model.model_dump(mode="json")
        return await self.log(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=payload,
            outcome=outcome,
        )

    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[EventLog]:
        """
        Get the event history for a specific entity.

        Returns:
            List of EventLog records, newest first
        """
        query = select(EventLog).where(
            and_(
                EventLog.entity_type == entity_type,
                EventLog.entity_id == entity_id,
            )
        )

        if event_types:
            query = query.where(EventLog.event_type.in_([t.value for t in event_types]))

        query = query.order_by(desc(EventLog.created_at)).offset(offset).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_actor_activity(
        self,
        user_id: uuid.UUID,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
    ) -> List[EventLog]:
        """Get all events performed by a specific user, newest first."""
        query = select(EventLog).where(EventLog.user_id == user_id)

        if since:
            query = query.where(EventLog.created_at >= since)
        if until:
            query = query.where(EventLog.created_at <= until)
        if event_types:
            query = query.where(EventLog.event_type.in_([t.value for t in event_types]))

        query = query.order_by(desc(EventLog.created_at)).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_events(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        event_type: Optional[EventType] = None,
        user_id: Optional[uuid.UUID] = None,
        since: Optional[datetime] = None,
    ) -> int:
        """Count events matching the given criteria."""
        query = select(func.count(EventLog.id))

        if entity_type:
            query = query.where(EventLog.entity_type == entity_type)
        if entity_id:
            query = query.where(EventLog.entity_id == entity_id)
        if event_type:
            query = query.where(EventLog.event_type == event_type.value)
        if user_id:
            query = query.where(EventLog.user_id == user_id)
        if since:
            query = query.where(EventLog.created_at >= since)

        result = await self.session.execute(query)
        return result.scalar() or 0

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert payload values to JSON-serializable types."""
        return {key: self._serialize_value(value) for key, value in payload.items()}

    def _serialize_value(self, value: Any) -> Any:
        if isinstance(value, uuid.UUID):
            return str(value)
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, dict):
            return self._serialize_payload(value)
        if isinstance(value, (list, tuple, set, frozenset)):
            items = [self._serialize_value(v) for v in value]
            return sorted(items) if isinstance(value, (set, frozenset)) else items
        return value
