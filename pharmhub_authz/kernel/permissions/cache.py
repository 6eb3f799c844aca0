"""
In-process cache of effective permission sets.

Entries are immutable ``PermissionKey`` snapshots, never ORM instances, so
they can be shared across sessions and worker threads.

Invalidation rules:
- a user's roles, groups or overrides change -> that user's entry
- a role's permission set or a group's role membership changes -> everything
- hierarchy edges change -> nothing (hierarchy does not feed resolution)

A session holding uncommitted kernel changes neither reads nor fills the
cache; its view of the grants is private until it commits or rolls back.
"""

import threading
import time
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, FrozenSet, Optional, Tuple

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession

from pharmhub_authz.config import get_settings
from pharmhub_authz.kernel.models.rbac import OperationType, ResourceType
from pharmhub_authz.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PermissionKey:
    """Detached, hashable view of a permission."""

    id: uuid.UUID
    name: str
    resource_type: ResourceType
    operation_type: OperationType

    @classmethod
    def of(cls, permission) -> "PermissionKey":
        return cls(
            id=permission.id,
            name=permission.name,
            resource_type=ResourceType(permission.resource_type),
            operation_type=OperationType(permission.operation_type),
        )


# (global generation, user generation) observed before a load started
ReadTicket = Tuple[int, int]


class PermissionCache:
    """TTL cache keyed by user id, guarded against stale write-back."""

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 10_000,
        enabled: bool = True,
    ) -> None:
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self.enabled = enabled
        self._data: Dict[uuid.UUID, Tuple[float, FrozenSet[PermissionKey]]] = {}
        self._generation = 0
        self._user_generation: Dict[uuid.UUID, int] = {}
        self._lock = threading.RLock()

    def ticket(self, user_id: uuid.UUID) -> ReadTicket:
        """Record the invalidation state before loading a user's grants."""
        with self._lock:
            return self._generation, self._user_generation.get(user_id, 0)

    def get(self, user_id: uuid.UUID) -> Optional[FrozenSet[PermissionKey]]:
        if not self.enabled:
            return None
        with self._lock:
            item = self._data.get(user_id)
            if item is None:
                return None
            expires_at, value = item
            if expires_at < time.monotonic():
                self._data.pop(user_id, None)
                return None
            return value

    def put(self, user_id: uuid.UUID, value: FrozenSet[PermissionKey], ticket: ReadTicket) -> bool:
        """Store ``value`` unless an invalidation happened since ``ticket`` was taken."""
        if not self.enabled:
            return False
        with self._lock:
            if ticket != (self._generation, self._user_generation.get(user_id, 0)):
                logger.debug("Discarding stale permission set", extra={"user_id": str(user_id)})
                return False
            if len(self._data) >= self.max_entries and user_id not in self._data:
                self._evict()
            self._data[user_id] = (time.monotonic() + self.ttl, value)
            return True

    def invalidate_user(self, user_id: uuid.UUID) -> None:
        with self._lock:
            self._data.pop(user_id, None)
            self._user_generation[user_id] = self._user_generation.get(user_id, 0) + 1
            if len(self._user_generation) > self.max_entries:
                # Forgetting per-user counters would let old tickets match again,
                # so start a new global generation alongside
                self._user_generation.clear()
                self._generation += 1

    def invalidate_all(self) -> None:
        with self._lock:
            self._data.clear()
            self._generation += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def _evict(self) -> None:
        now = time.monotonic()
        expired = [uid for uid, (expires_at, _) in self._data.items() if expires_at < now]
        for uid in expired:
            self._data.pop(uid, None)
        if len(self._data) >= self.max_entries:
            # Oldest-expiring tenth goes
            victims = sorted(self._data, key=lambda uid: self._data[uid][0])[: max(1, self.max_entries // 10)]
            for uid in victims:
                self._data.pop(uid, None)


@lru_cache
def get_permission_cache() -> PermissionCache:
    """Process-wide cache configured from settings."""
    settings = get_settings()
    return PermissionCache(
        ttl_seconds=settings.permission_cache_ttl_seconds,
        max_entries=settings.permission_cache_max_entries,
        enabled=settings.permission_cache_enabled,
    )


_PENDING_KEY = "pharmhub_authz.pending_invalidations"


def invalidate_after_transaction(
    session: AsyncSession,
    cache: PermissionCache,
    user_id: Optional[uuid.UUID] = None,
) -> None:
    """
    Drop cached permission sets now and again when ``session``'s
    transaction ends, whether it commits or rolls back.

    The second pass discards anything a concurrent reader cached from the
    pre-commit state in between. Until then :func:`has_pending_changes`
    is true for ``session``.
    """
    _invalidate(cache, user_id)

    pending = session.info.get(_PENDING_KEY)
    if pending is None:
        pending = session.info[_PENDING_KEY] = []
        event.listen(session.sync_session, "after_transaction_end", _on_transaction_end)
    pending.append((cache, user_id))


def has_pending_changes(session: AsyncSession) -> bool:
    """True while ``session`` holds kernel changes that are not yet committed or rolled back."""
    return bool(session.info.get(_PENDING_KEY))


def _on_transaction_end(sync_session, transaction) -> None:
    # Savepoints and flush subtransactions end inside the outer transaction
    if transaction.parent is not None:
        return
    pending = sync_session.info.get(_PENDING_KEY)
    if not pending:
        return
    sync_session.info[_PENDING_KEY] = []
    for cache, user_id in pending:
        _invalidate(cache, user_id)


def _invalidate(cache: PermissionCache, user_id: Optional[uuid.UUID]) -> None:
    if user_id is None:
        cache.invalidate_all()
    else:
        cache.invalidate_user(user_id)
