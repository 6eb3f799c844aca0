"""
Kernel Data Models

SQLAlchemy models for the permission catalog, roles, groups, the role
hierarchy, the user assignment surface and the audit log.
"""

from pharmhub_authz.kernel.models.base import Base, TimestampMixin, generate_uuid
from pharmhub_authz.kernel.models.rbac import (
    Group,
    OperationType,
    Permission,
    ResourceType,
    Role,
    RoleName,
    group_roles,
    role_hierarchy,
    role_permissions,
)
from pharmhub_authz.kernel.models.user import (
    User,
    UserPermissionOverride,
    user_groups,
    user_roles,
)
from pharmhub_authz.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    # Catalog, roles, groups
    "Permission",
    "ResourceType",
    "OperationType",
    "Role",
    "RoleName",
    "Group",
    "role_permissions",
    "role_hierarchy",
    "group_roles",
    # Users
    "User",
    "UserPermissionOverride",
    "user_roles",
    "user_groups",
    # Event Log
    "EventLog",
    "EventType",
]
