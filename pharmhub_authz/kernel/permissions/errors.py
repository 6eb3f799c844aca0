"""
Error taxonomy for the authorization kernel.

Every error is a synchronous, caller-visible failure of a single call and
carries a stable ``code`` that outer layers map to user-facing responses.
"""

from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

M = TypeVar("M", bound=BaseModel)


class RBACError(Exception):
    code: str = "RBAC_000"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        if code:
            self.code = code


class InvalidHierarchyError(RBACError):
    """Adding the edge would close a cycle."""

    code = "RBAC_002"

    def __init__(self, message: str = "Invalid role hierarchy detected") -> None:
        super().__init__(message)


class NotFoundError(RBACError):
    code = "RBAC_003"

    def __init__(self, entity: str, key: object = None) -> None:
        self.entity = entity
        self.key = key
        message = f"{entity} not found" if key is None else f"{entity} {key} not found"
        super().__init__(message)


class PrecedenceViolationError(RBACError):
    """Child role is not strictly weaker than its parent."""

    code = "RBAC_004"


class DuplicateNameError(RBACError):
    code = "RBAC_005"

    def __init__(self, entity: str, name: str) -> None:
        self.entity = entity
        self.name = name
        super().__init__(f"{entity} with name {name} already exists")


class SelfReferenceError(RBACError):
    code = "RBAC_006"

    def __init__(self, message: str = "A role cannot be its own child") -> None:
        super().__init__(message)


class InvalidDataError(RBACError):
    """Malformed administrative input."""

    code = "RBAC_007"


def validated(model: Type[M], **data) -> M:
    """Build ``model`` from keyword data, raising InvalidDataError on bad input."""
    try:
        return model(**data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or model.__name__}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidDataError(problems) from exc
