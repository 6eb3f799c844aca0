"""
Immutable event log for the security audit trail.

All administrative mutations are logged here BEFORE commit.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, Text, func, Index, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pharmhub_authz.kernel.models.base import Base, generate_uuid


class EventType(str, Enum):
    """All event types for the audit log."""

    # Catalog events
    PERMISSION_CREATED = "permission.created"

    # Role events
    ROLE_CREATED = "role.created"
    ROLE_UPDATED = "role.updated"
    ROLE_PERMISSION_ASSIGNED = "role.permission_assigned"
    ROLE_PERMISSION_REVOKED = "role.permission_revoked"

    # Hierarchy events
    HIERARCHY_EDGE_ADDED = "hierarchy.edge_added"
    HIERARCHY_EDGE_REMOVED = "hierarchy.edge_removed"

    # Group events
    GROUP_CREATED = "group.created"
    GROUP_ROLE_ADDED = "group.role_added"
    GROUP_ROLE_REMOVED = "group.role_removed"

    # User assignment events
    USER_CREATED = "user.created"
    USER_ROLE_ASSIGNED = "user.role_assigned"
    USER_ROLE_REMOVED = "user.role_removed"
    USER_GROUP_ASSIGNED = "user.group_assigned"
    USER_GROUP_REMOVED = "user.group_removed"
    USER_OVERRIDE_ADDED = "user.override_added"
    USER_OVERRIDE_REMOVED = "user.override_removed"

    # Access decisions (only when audit_access_decisions is enabled)
    ACCESS_GRANTED = "access.granted"
    ACCESS_DENIED = "access.denied"


class EventLog(Base):
    """
    Immutable audit event log.

    This table is append-only - no updates or deletes allowed.
    """

    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )

    # Event identification
    event_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    # Entity reference
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )

    # Actor
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,  # Seeding and other system events have no actor
        index=True,
    )

    # Event data
    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    outcome: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="SUCCESS",
    )
    request_id: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Timestamp (immutable)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_event_logs_entity", "entity_type", "entity_id"),
        Index("ix_event_logs_user_time", "user_id", "created_at"),
        Index("ix_event_logs_type_time", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.event_type} {self.entity_type}:{self.entity_id}>"
