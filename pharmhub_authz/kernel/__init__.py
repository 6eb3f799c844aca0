"""
Authorization kernel.

- Permission catalog, roles and groups
- Role hierarchy (acyclic, strictly precedence-increasing)
- Effective permission resolution with per-user overrides
- Immutable event log (all administrative mutations logged before commit)
"""

from pharmhub_authz.kernel.models import (
    EventLog,
    EventType,
    Group,
    OperationType,
    Permission,
    ResourceType,
    Role,
    RoleName,
    User,
    UserPermissionOverride,
)

__all__ = [
    # Catalog, roles, groups
    "Permission",
    "ResourceType",
    "OperationType",
    "Role",
    "RoleName",
    "Group",
    # Users
    "User",
    "UserPermissionOverride",
    # Event Log
    "EventLog",
    "EventType",
]
