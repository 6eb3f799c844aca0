"""
Permission catalog, roles, groups and the role hierarchy.

Hierarchy edges live only in the ``role_hierarchy`` join table and are
read and written by the hierarchy service as a whole graph. They encode
administrative scope; a role's permissions are exactly its own rows in
``role_permissions``.
"""

import uuid
from enum import Enum
from typing import Optional, Set

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmhub_authz.kernel.models.base import Base, TimestampMixin, generate_uuid


class ResourceType(str, Enum):
    """Everything a permission can be about."""

    # Users and authentication
    USER = "USER"

    # Roles and permissions
    ROLE = "ROLE"
    PERMISSION = "PERMISSION"
    GROUP = "GROUP"

    # Pharmacy staff
    PHARMACIST = "PHARMACIST"
    PHARMACY_MANAGER = "PHARMACY_MANAGER"
    PROPRIETOR = "PROPRIETOR"
    SALESMAN = "SALESMAN"

    # Pharmacy operations
    PHARMACY = "PHARMACY"
    INVENTORY = "INVENTORY"
    MEDICINE = "MEDICINE"
    PRESCRIPTION = "PRESCRIPTION"
    ORDER = "ORDER"
    SALES = "SALES"

    # Business operations
    BUSINESS = "BUSINESS"
    REPORTS = "REPORTS"
    ANALYTICS = "ANALYTICS"

    # System
    CONNECTION = "CONNECTION"
    AUDIT_LOG = "AUDIT_LOG"
    SYSTEM_SETTING = "SYSTEM_SETTING"

    # Other
    NOTIFICATION = "NOTIFICATION"
    MESSAGE = "MESSAGE"
    DOCUMENT = "DOCUMENT"
    EXAM = "EXAM"


class OperationType(str, Enum):
    """Operations a permission allows on its resource type."""

    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    MANAGE = "MANAGE"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"
    VIEW_ALL = "VIEW_ALL"
    VIEW_OWN = "VIEW_OWN"


class RoleName(str, Enum):
    """Closed set of role names."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    PROPRIETOR = "PROPRIETOR"
    PHARMACY_MANAGER = "PHARMACY_MANAGER"
    EXAM_CREATOR = "EXAM_CREATOR"
    INSTRUCTOR = "INSTRUCTOR"
    PHARMACIST = "PHARMACIST"
    TECHNICIAN = "TECHNICIAN"
    SALESMAN = "SALESMAN"
    STUDENT = "STUDENT"
    USER = "USER"


# Join tables

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Uuid(), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Uuid(), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

role_hierarchy = Table(
    "role_hierarchy",
    Base.metadata,
    Column("parent_role_id", Uuid(), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("child_role_id", Uuid(), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True, index=True),
    CheckConstraint("parent_role_id <> child_role_id", name="ck_role_hierarchy_no_self_edge"),
)

group_roles = Table(
    "group_roles",
    Base.metadata,
    Column("group_id", Uuid(), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Uuid(), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Permission(Base, TimestampMixin):
    """
    A named (resource_type, operation_type) capability.

    ``name`` is the only uniqueness constraint; several permissions may
    share the same resource/operation pair.
    """

    __tablename__ = "permissions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    resource_type: Mapped[ResourceType] = mapped_column(
        SAEnum(ResourceType, native_enum=False, length=50),
        nullable=False,
        index=True,
    )
    operation_type: Mapped[OperationType] = mapped_column(
        SAEnum(OperationType, native_enum=False, length=50),
        nullable=False,
    )
    # Informational; consumed by callers, never enforced by the kernel
    requires_approval: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    def matches(self, resource_type: ResourceType, operation_type: OperationType) -> bool:
        return self.resource_type == resource_type and self.operation_type == operation_type

    def __repr__(self) -> str:
        return f"<Permission {self.name} {self.resource_type.value}:{self.operation_type.value}>"


class Role(Base, TimestampMixin):
    """
    A bundle of directly-owned permissions with an authority precedence.

    Lower ``precedence`` means stronger authority. Values are not unique.
    """

    __tablename__ = "roles"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    name: Mapped[RoleName] = mapped_column(
        SAEnum(RoleName, native_enum=False, length=50),
        unique=True,
        index=True,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    precedence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    system: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    permissions: Mapped[Set["Permission"]] = relationship(
        "Permission",
        secondary=role_permissions,
        lazy="selectin",
        collection_class=set,
    )

    def __repr__(self) -> str:
        return f"<Role {self.name.value} precedence={self.precedence}>"


class Group(Base, TimestampMixin):
    """A named bundle of roles granted in full to every member."""

    __tablename__ = "groups"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    roles: Mapped[Set["Role"]] = relationship(
        "Role",
        secondary=group_roles,
        lazy="selectin",
        collection_class=set,
    )

    def __repr__(self) -> str:
        return f"<Group {self.name}>"
