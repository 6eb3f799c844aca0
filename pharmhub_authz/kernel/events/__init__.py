"""
Audit infrastructure.

Provides append-only security audit logging with immutable events.
"""

from pharmhub_authz.kernel.events.event_store import EventStore
from pharmhub_authz.kernel.events.event_types import (
    AccessDecisionEvent,
    BaseEvent,
    GroupEvent,
    HierarchyEdgeEvent,
    PermissionCreatedEvent,
    RoleEvent,
    RolePermissionEvent,
    UserAssignmentEvent,
)

__all__ = [
    "EventStore",
    "BaseEvent",
    "PermissionCreatedEvent",
    "RoleEvent",
    "RolePermissionEvent",
    "GroupEvent",
    "HierarchyEdgeEvent",
    "UserAssignmentEvent",
    "AccessDecisionEvent",
]
