"""
Permission Core - role-based access control.

Catalog, role and group registries, the role hierarchy, user assignments
and the effective permission resolver.
"""

from pharmhub_authz.kernel.permissions.assignments import UserAssignmentService
from pharmhub_authz.kernel.permissions.cache import PermissionCache, PermissionKey, get_permission_cache
from pharmhub_authz.kernel.permissions.catalog import PermissionCatalog
from pharmhub_authz.kernel.permissions.errors import (
    DuplicateNameError,
    InvalidDataError,
    InvalidHierarchyError,
    NotFoundError,
    PrecedenceViolationError,
    RBACError,
    SelfReferenceError,
)
from pharmhub_authz.kernel.permissions.groups import GroupRegistry
from pharmhub_authz.kernel.permissions.hierarchy import RoleHierarchyService
from pharmhub_authz.kernel.permissions.overrides import (
    DenyOverride,
    GrantOverride,
    PermissionOverride,
    deny,
    grant,
    parse_override,
)
from pharmhub_authz.kernel.permissions.resolver import (
    EffectivePermissionResolver,
    UserGrantSnapshot,
    compute_effective_permissions,
)
from pharmhub_authz.kernel.permissions.roles import RoleRegistry

__all__ = [
    # Services
    "PermissionCatalog",
    "RoleRegistry",
    "GroupRegistry",
    "RoleHierarchyService",
    "EffectivePermissionResolver",
    "UserAssignmentService",
    # Resolution
    "UserGrantSnapshot",
    "compute_effective_permissions",
    "PermissionCache",
    "PermissionKey",
    "get_permission_cache",
    # Overrides
    "GrantOverride",
    "DenyOverride",
    "PermissionOverride",
    "grant",
    "deny",
    "parse_override",
    # Errors
    "RBACError",
    "NotFoundError",
    "DuplicateNameError",
    "SelfReferenceError",
    "PrecedenceViolationError",
    "InvalidHierarchyError",
    "InvalidDataError",
]
