"""
Event payload schemas for the security audit trail.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    """Base event payload structure."""

    model_config = ConfigDict(extra="allow")

    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# Catalog / role / group events

class PermissionCreatedEvent(BaseEvent):
    name: str
    resource_type: str
    operation_type: str
    requires_approval: bool = False


class RoleEvent(BaseEvent):
    """Role-related event payloads."""

    role: str
    precedence: Optional[int] = None
    previous_precedence: Optional[int] = None
    permissions: List[str] = Field(default_factory=list)


class RolePermissionEvent(BaseEvent):
    role: str
    permission: str


class GroupEvent(BaseEvent):
    group: str
    roles: List[str] = Field(default_factory=list)


# Hierarchy events

class HierarchyEdgeEvent(BaseEvent):
    """Parent/child edge change in the role hierarchy."""

    parent_role: str
    child_role: str
    parent_role_id: uuid.UUID
    child_role_id: uuid.UUID


# User assignment events

class UserAssignmentEvent(BaseEvent):
    username: str
    role: Optional[str] = None
    group: Optional[str] = None
    override: Optional[str] = None


# Access decisions

class AccessDecisionEvent(BaseEvent):
    resource_type: str
    operation_type: str
    resource_id: Optional[str] = None
    granted: bool
