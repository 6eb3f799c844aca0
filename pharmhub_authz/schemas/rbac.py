"""
Schemas for administrative input and read-side views of the kernel.
"""

import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pharmhub_authz.kernel.models.rbac import OperationType, ResourceType, RoleName


def _clean_name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("name cannot be null or empty")
    return v


# Administrative input

class PermissionCreate(BaseModel):
    """Permission creation request."""

    name: str = Field(..., min_length=1, max_length=100)
    resource_type: ResourceType
    operation_type: OperationType
    requires_approval: bool = False
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = _clean_name(v)
        if v.startswith("-"):
            raise ValueError("permission names cannot start with '-'")
        return v


class RoleCreate(BaseModel):
    """Role creation request; names come from the closed RoleName set."""

    name: RoleName
    precedence: int
    permission_ids: List[uuid.UUID] = Field(default_factory=list)
    system: bool = False
    description: Optional[str] = None


class RoleUpdate(BaseModel):
    description: Optional[str] = None
    precedence: Optional[int] = None
    permission_ids: Optional[List[uuid.UUID]] = None


class GroupCreate(BaseModel):
    """Group creation request."""

    name: str = Field(..., min_length=1, max_length=100)
    role_ids: List[uuid.UUID] = Field(default_factory=list)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v)


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(None, max_length=255)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        return _clean_name(v)


# Read-side views

class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    resource_type: ResourceType
    operation_type: OperationType
    requires_approval: bool = False
    description: Optional[str] = None


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: RoleName
    precedence: int
    system: bool = False
    description: Optional[str] = None


class AccessProfile(BaseModel):
    """Everything a user can do, for "what can I do" views and diagnostics."""

    user_id: uuid.UUID
    username: str
    roles: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)
    permissions: List[PermissionResponse] = Field(default_factory=list)
    overrides: List[str] = Field(default_factory=list)
