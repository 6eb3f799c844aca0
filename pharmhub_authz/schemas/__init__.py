"""
Pydantic schemas for administrative input and read-side views.
"""

from pharmhub_authz.schemas.rbac import (
    AccessProfile,
    GroupCreate,
    PermissionCreate,
    PermissionResponse,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    UserCreate,
)

__all__ = [
    "PermissionCreate",
    "RoleCreate",
    "RoleUpdate",
    "GroupCreate",
    "UserCreate",
    "PermissionResponse",
    "RoleResponse",
    "AccessProfile",
]
