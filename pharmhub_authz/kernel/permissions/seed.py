"""
Default catalog, roles, hierarchy and groups.

``seed_defaults`` is idempotent: anything that already exists is left as
it is, so it is safe to run on every deployment. Existing roles keep
whatever permissions administrators have given them since.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from pharmhub_authz.kernel.models.rbac import OperationType, Permission, ResourceType, RoleName
from pharmhub_authz.kernel.permissions.cache import PermissionCache
from pharmhub_authz.kernel.permissions.catalog import PermissionCatalog
from pharmhub_authz.kernel.permissions.groups import GroupRegistry
from pharmhub_authz.kernel.permissions.hierarchy import RoleHierarchyService
from pharmhub_authz.kernel.permissions.roles import RoleRegistry
from pharmhub_authz.logging_config import get_logger

logger = get_logger(__name__)

AUTH_USER_PERMISSIONS = (
    "auth:login",
    "auth:logout",
    "auth:view-profile",
    "auth:edit-profile",
    "auth:manage-account",
    "auth:verify-email",
    "auth:reset-password",
    "auth:view-sessions",
)

AUTH_ADMIN_PERMISSIONS = (
    "auth:manage-users",
    "auth:view-users",
    "auth:edit-users",
    "auth:delete-users",
    "auth:manage-sessions",
    "auth:impersonate-user",
)

EXAM_STUDENT_PERMISSIONS = ("exams:view", "exams:take", "exams:view-results")

EXAM_INSTRUCTOR_PERMISSIONS = (
    "exams:create",
    "exams:edit",
    "exams:publish",
    "exams:unpublish",
    "exams:manage-questions",
    "exams:assign",
    "exams:grade",
    "exams:view-results",
    "exams:view-analytics",
)

EXAM_ADMIN_PERMISSIONS = (
    "exams:create",
    "exams:edit",
    "exams:delete",
    "exams:publish",
    "exams:unpublish",
    "exams:manage-questions",
    "exams:assign",
    "exams:grade",
    "exams:view-results",
    "exams:export-results",
    "exams:view-analytics",
)

# name -> (resource type, operation type, description)
CORE_PERMISSIONS: Dict[str, Tuple[ResourceType, OperationType, str]] = {
    "VIEW_PROFILE": (ResourceType.USER, OperationType.READ, "View user profile"),
    "UPDATE_PROFILE": (ResourceType.USER, OperationType.UPDATE, "Update user profile"),
    "VIEW_PHARMACY_INVENTORY": (ResourceType.INVENTORY, OperationType.READ, "View pharmacy inventory"),
    "MANAGE_PHARMACY_INVENTORY": (ResourceType.INVENTORY, OperationType.MANAGE, "Manage pharmacy inventory"),
    "MANAGE_PHARMACY": (ResourceType.PHARMACY, OperationType.MANAGE, "Manage pharmacy operations"),
    "VIEW_PHARMACY": (ResourceType.PHARMACY, OperationType.READ, "View pharmacy details"),
    "MANAGE_BUSINESS": (ResourceType.BUSINESS, OperationType.MANAGE, "Manage pharmacy business"),
    "PROCESS_SALES": (ResourceType.SALES, OperationType.CREATE, "Process sales transactions"),
    "VIEW_SALES": (ResourceType.SALES, OperationType.READ, "View sales records"),
    "MANAGE_USERS": (ResourceType.USER, OperationType.MANAGE, "Manage system users"),
    "MANAGE_ROLES": (ResourceType.ROLE, OperationType.MANAGE, "Manage system roles"),
    "MANAGE_PERMISSIONS": (ResourceType.PERMISSION, OperationType.MANAGE, "Manage system permissions"),
}

# Keyword -> operation, first match wins
_OPERATION_KEYWORDS: List[Tuple[Tuple[str, ...], OperationType]] = [
    (("create", "add"), OperationType.CREATE),
    (("view", "read", "login", "logout"), OperationType.READ),
    (("edit", "update", "reset", "verify"), OperationType.UPDATE),
    (("delete", "remove"), OperationType.DELETE),
    (("approve",), OperationType.APPROVE),
    (("reject",), OperationType.REJECT),
    (("manage", "impersonate"), OperationType.MANAGE),
    (("export",), OperationType.EXPORT),
    (("import",), OperationType.IMPORT),
]


def infer_operation_type(permission_name: str) -> OperationType:
    """Guess the operation from keywords in the name; READ when nothing matches."""
    lower = permission_name.lower()
    for keywords, operation in _OPERATION_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return operation
    return OperationType.READ


def default_permissions() -> Dict[str, Tuple[ResourceType, OperationType, str]]:
    permissions = dict(CORE_PERMISSIONS)
    for name in AUTH_USER_PERMISSIONS:
        permissions[name] = (ResourceType.USER, infer_operation_type(name), _describe("", name))
    for name in AUTH_ADMIN_PERMISSIONS:
        permissions[name] = (ResourceType.USER, infer_operation_type(name), _describe("Admin permission", name))
    for audience, names in (
        ("Student permission", EXAM_STUDENT_PERMISSIONS),
        ("Instructor permission", EXAM_INSTRUCTOR_PERMISSIONS),
        ("Admin permission", EXAM_ADMIN_PERMISSIONS),
    ):
        for name in names:
            permissions.setdefault(name, (ResourceType.EXAM, infer_operation_type(name), _describe(audience, name)))
    return permissions


def _describe(audience: str, name: str) -> str:
    action = name.split(":", 1)[-1].replace("-", " ")
    return f"{audience} to {action}" if audience else f"Permission to {action}"


_USER_BASE = ("VIEW_PROFILE", "UPDATE_PROFILE") + AUTH_USER_PERMISSIONS
_PHARMACIST = _USER_BASE + ("VIEW_PHARMACY_INVENTORY", "exams:view", "exams:take")
_PHARMACY_MANAGER = _PHARMACIST + ("MANAGE_PHARMACY_INVENTORY", "MANAGE_PHARMACY")

# role -> (precedence, description, permission names); None means every seeded permission
DEFAULT_ROLES: Dict[RoleName, Tuple[int, str, Optional[Tuple[str, ...]]]] = {
    RoleName.SUPER_ADMIN: (10, "Super administrator with highest privileges", None),
    RoleName.ADMIN: (20, "Administrator role with full system access", None),
    RoleName.PROPRIETOR: (40, "Proprietor role for pharmacy business ownership", _PHARMACY_MANAGER + ("MANAGE_BUSINESS",)),
    RoleName.PHARMACY_MANAGER: (60, "Pharmacy manager role for managing pharmacy operations", _PHARMACY_MANAGER),
    RoleName.EXAM_CREATOR: (
        65,
        "Role for creating and managing exams",
        _USER_BASE + ("exams:create", "exams:edit", "exams:manage-questions", "exams:view"),
    ),
    RoleName.INSTRUCTOR: (70, "Instructor role with exam management permissions", _USER_BASE + EXAM_INSTRUCTOR_PERMISSIONS),
    RoleName.TECHNICIAN: (75, "Pharmacy technician role", _PHARMACIST),
    RoleName.PHARMACIST: (80, "Pharmacist role with permissions to view inventory", _PHARMACIST),
    RoleName.SALESMAN: (85, "Salesman role for processing sales", _USER_BASE + ("PROCESS_SALES", "VIEW_SALES")),
    RoleName.STUDENT: (90, "Student role with exam taking permissions", _USER_BASE + EXAM_STUDENT_PERMISSIONS),
    RoleName.USER: (100, "Base user role with minimal permissions", _USER_BASE),
}

DEFAULT_HIERARCHY: List[Tuple[RoleName, RoleName]] = [
    (RoleName.SUPER_ADMIN, RoleName.ADMIN),
    (RoleName.ADMIN, RoleName.PROPRIETOR),
    (RoleName.PROPRIETOR, RoleName.PHARMACY_MANAGER),
    (RoleName.PHARMACY_MANAGER, RoleName.PHARMACIST),
    (RoleName.PHARMACY_MANAGER, RoleName.SALESMAN),
    (RoleName.PHARMACIST, RoleName.USER),
    (RoleName.SALESMAN, RoleName.USER),
]

DEFAULT_GROUPS: Dict[str, Tuple[str, Tuple[RoleName, ...]]] = {
    "PHARMACY_STAFF": ("Group for pharmacy staff members", (RoleName.PHARMACIST, RoleName.SALESMAN)),
    "PHARMACY_MANAGEMENT": ("Group for pharmacy management team", (RoleName.PHARMACY_MANAGER, RoleName.PROPRIETOR)),
    "EDUCATION": (
        "Group for education-related roles",
        (RoleName.STUDENT, RoleName.INSTRUCTOR, RoleName.EXAM_CREATOR),
    ),
    "Administrators": ("Group for system administrators", (RoleName.ADMIN,)),
    "SuperAdmins": ("Group for super administrators", (RoleName.SUPER_ADMIN, RoleName.ADMIN)),
}


@dataclass
class SeedReport:
    permissions: List[str] = field(default_factory=list)
    roles: List[str] = field(default_factory=list)
    edges: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)

    @property
    def created_anything(self) -> bool:
        return bool(self.permissions or self.roles or self.edges or self.groups)


async def seed_defaults(session: AsyncSession, cache: Optional[PermissionCache] = None) -> SeedReport:
    """
    Create whatever part of the default setup is missing and commit.

    Hierarchy edges go through :class:`RoleHierarchyService`, so they are
    validated and each one commits the work done before it.
    """
    report = SeedReport()
    catalog = PermissionCatalog(session, cache)
    roles = RoleRegistry(session, cache)
    groups = GroupRegistry(session, cache)
    hierarchy = RoleHierarchyService(session)

    wanted = default_permissions()
    permissions: Dict[str, Permission] = await catalog.find_by_names(wanted)
    for name, (resource_type, operation_type, description) in wanted.items():
        if name in permissions:
            continue
        permissions[name] = await catalog.create(name, resource_type, operation_type, description=description)
        report.permissions.append(name)

    existing_roles = {role.name: role for role in await roles.list_roles()}
    for role_name, (precedence, description, permission_names) in DEFAULT_ROLES.items():
        if role_name in existing_roles:
            continue
        names = wanted.keys() if permission_names is None else permission_names
        existing_roles[role_name] = await roles.create_role(
            role_name,
            precedence,
            permission_ids=[permissions[name].id for name in names],
            system=True,
            description=description,
        )
        report.roles.append(role_name.value)

    for parent, child in DEFAULT_HIERARCHY:
        if await hierarchy.add_child_role(existing_roles[parent].id, existing_roles[child].id):
            report.edges.append(f"{parent.value}->{child.value}")

    existing_groups = {group.name for group in await groups.list_groups()}
    for group_name, (description, role_names) in DEFAULT_GROUPS.items():
        if group_name in existing_groups:
            continue
        await groups.create_group(
            group_name,
            role_ids=[existing_roles[name].id for name in role_names],
            description=description,
        )
        report.groups.append(group_name)

    await session.commit()

    if report.created_anything:
        logger.info(
            "Seeded %d permission(s), %d role(s), %d edge(s), %d group(s)",
            len(report.permissions), len(report.roles), len(report.edges), len(report.groups),
        )
    else:
        logger.info("Default roles and permissions already present")
    return report
