"""
User assignment surface consumed by the effective permission resolver.

Only the authorization-relevant part of the user aggregate lives here:
direct roles, direct groups and raw permission override tokens.
"""

import uuid
from datetime import datetime
from typing import List, Optional, Set

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Table, func, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmhub_authz.kernel.models.base import Base, TimestampMixin, generate_uuid
from pharmhub_authz.kernel.models.rbac import Group, Role


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Uuid(), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Uuid(), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True, index=True),
)

user_groups = Table(
    "user_groups",
    Base.metadata,
    Column("user_id", Uuid(), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("group_id", Uuid(), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class User(Base, TimestampMixin):
    """User account as seen by the authorization kernel."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    username: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Relationships
    roles: Mapped[Set[Role]] = relationship(
        Role,
        secondary=user_roles,
        lazy="selectin",
        collection_class=set,
    )
    groups: Mapped[Set[Group]] = relationship(
        Group,
        secondary=user_groups,
        lazy="selectin",
        collection_class=set,
    )
    override_entries: Mapped[List["UserPermissionOverride"]] = relationship(
        "UserPermissionOverride",
        back_populates="user",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def permission_overrides(self) -> Set[str]:
        """Raw override tokens (``NAME`` grants, ``-NAME`` denies)."""
        return {entry.token for entry in self.override_entries}

    def __repr__(self) -> str:
        return f"<User {self.username}>"


class UserPermissionOverride(Base):
    """One stored override token in its legacy string encoding."""

    __tablename__ = "user_permission_overrides"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    token: Mapped[str] = mapped_column(
        String(101),  # permission name plus optional "-" prefix
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    user: Mapped[User] = relationship(User, back_populates="override_entries")

    def __repr__(self) -> str:
        return f"<UserPermissionOverride user={self.user_id} token={self.token}>"
