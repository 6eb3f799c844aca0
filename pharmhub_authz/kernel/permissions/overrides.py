"""
Per-user permission overrides.

An override either force-grants or force-denies a permission by name.
Storage keeps the legacy string encoding (``NAME`` / ``-NAME``); everything
above the persistence edge works with the two explicit variants.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, Tuple, Union

from pharmhub_authz.kernel.permissions.errors import InvalidDataError
from pharmhub_authz.logging_config import get_logger

logger = get_logger(__name__)

DENY_PREFIX = "-"


@dataclass(frozen=True)
class GrantOverride:
    """Force-include ``permission_name`` if the catalog knows it."""

    permission_name: str

    @property
    def token(self) -> str:
        return self.permission_name


@dataclass(frozen=True)
class DenyOverride:
    """Force-exclude ``permission_name``; accepted even for unknown names."""

    permission_name: str

    @property
    def token(self) -> str:
        return DENY_PREFIX + self.permission_name


PermissionOverride = Union[GrantOverride, DenyOverride]


def parse_override(token: str) -> PermissionOverride:
    """Decode a stored token into its variant."""
    if token.startswith(DENY_PREFIX):
        name = token[len(DENY_PREFIX):]
        if not name:
            raise InvalidDataError(f"Override token {token!r} names no permission")
        return DenyOverride(name)
    if not token:
        raise InvalidDataError("Override token cannot be empty")
    return GrantOverride(token)


def grant(permission_name: str) -> GrantOverride:
    return GrantOverride(_checked_name(permission_name))


def deny(permission_name: str) -> DenyOverride:
    return DenyOverride(_checked_name(permission_name))


def stored_overrides(tokens: Iterable[str]) -> Iterator[PermissionOverride]:
    """
    Decode stored tokens for reading.

    A token naming no permission (``""`` or ``"-"``) can match nothing, so it
    is skipped rather than failing the read.
    """
    for token in tokens:
        try:
            yield parse_override(token)
        except InvalidDataError:
            logger.debug("Ignoring stored override token %r", token)


def split_overrides(tokens: Iterable[str]) -> Tuple[frozenset, frozenset]:
    """Return (granted names, denied names) for a collection of raw tokens."""
    granted = set()
    denied = set()
    for override in stored_overrides(tokens):
        if isinstance(override, DenyOverride):
            denied.add(override.permission_name)
        else:
            granted.add(override.permission_name)
    return frozenset(granted), frozenset(denied)


def _checked_name(permission_name: str) -> str:
    if not permission_name or not permission_name.strip():
        raise InvalidDataError("Permission name cannot be null or empty")
    if permission_name.startswith(DENY_PREFIX):
        raise InvalidDataError(f"Permission name {permission_name!r} cannot start with {DENY_PREFIX!r}")
    return permission_name
