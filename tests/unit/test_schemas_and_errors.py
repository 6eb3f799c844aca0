"""Unit tests for input schemas and the error taxonomy."""

import pytest

from pharmhub_authz.kernel.models.rbac import OperationType, ResourceType, RoleName
from pharmhub_authz.kernel.permissions.errors import (
    DuplicateNameError,
    InvalidDataError,
    InvalidHierarchyError,
    NotFoundError,
    PrecedenceViolationError,
    RBACError,
    SelfReferenceError,
    validated,
)
from pharmhub_authz.schemas.rbac import GroupCreate, PermissionCreate, RoleCreate


class TestValidated:
    """Tests for translating pydantic failures into InvalidDataError."""

    def test_valid_permission(self):
        data = validated(
            PermissionCreate,
            name="  READ_PRESCRIPTION ",
            resource_type="PRESCRIPTION",
            operation_type="READ",
        )

        assert data.name == "READ_PRESCRIPTION"
        assert data.resource_type is ResourceType.PRESCRIPTION
        assert data.operation_type is OperationType.READ

    @pytest.mark.parametrize("name", ["", "   ", "-READ_PRESCRIPTION"])
    def test_bad_permission_names(self, name):
        with pytest.raises(InvalidDataError):
            validated(PermissionCreate, name=name, resource_type="PRESCRIPTION", operation_type="READ")

    def test_unknown_resource_type(self):
        with pytest.raises(InvalidDataError) as exc_info:
            validated(PermissionCreate, name="X", resource_type="SPACESHIP", operation_type="READ")

        assert "resource_type" in str(exc_info.value)

    def test_role_name_outside_enumeration(self):
        with pytest.raises(InvalidDataError):
            validated(RoleCreate, name="JANITOR", precedence=50)

    def test_role_name_accepts_enum_and_string(self):
        assert validated(RoleCreate, name="ADMIN", precedence=1).name is RoleName.ADMIN
        assert validated(RoleCreate, name=RoleName.ADMIN, precedence=1).name is RoleName.ADMIN

    def test_empty_group_name(self):
        with pytest.raises(InvalidDataError):
            validated(GroupCreate, name=" ")


class TestErrorCodes:
    """Every error carries a stable code."""

    @pytest.mark.parametrize(
        "error, code",
        [
            (RBACError("boom"), "RBAC_000"),
            (InvalidHierarchyError(), "RBAC_002"),
            (NotFoundError("Role", "ADMIN"), "RBAC_003"),
            (PrecedenceViolationError("too strong"), "RBAC_004"),
            (DuplicateNameError("Group", "EDUCATION"), "RBAC_005"),
            (SelfReferenceError(), "RBAC_006"),
            (InvalidDataError("bad"), "RBAC_007"),
        ],
    )
    def test_codes(self, error, code):
        assert isinstance(error, RBACError)
        assert error.code == code

    def test_messages(self):
        assert str(NotFoundError("Role", "ADMIN")) == "Role ADMIN not found"
        assert str(NotFoundError("User")) == "User not found"
        assert str(DuplicateNameError("Group", "EDUCATION")) == "Group with name EDUCATION already exists"

    def test_code_override(self):
        assert RBACError("custom", code="RBAC_001").code == "RBAC_001"
