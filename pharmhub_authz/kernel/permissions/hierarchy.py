"""
Role hierarchy service.

Maintains the directed parent -> child edges between roles under two
invariants:

- every edge goes from a strictly stronger role to a weaker one
  (``parent.precedence < child.precedence``)
- the graph stays acyclic

Edges describe administrative scope (which roles a role may manage). They
are never consulted when resolving a user's permissions.

Structural mutations (edge add/remove, precedence changes) are serialized
and commit their own transaction while the lock is held, so the cycle and
precedence checks always run against the latest committed graph.
"""

import asyncio
import uuid
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional, Set

from sqlalchemy import and_, delete, insert, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from pharmhub_authz.config import Settings, get_settings
from pharmhub_authz.kernel.events.event_store import EventStore
from pharmhub_authz.kernel.events.event_types import HierarchyEdgeEvent
from pharmhub_authz.kernel.models.event_log import EventType
from pharmhub_authz.kernel.models.rbac import Role, role_hierarchy
from pharmhub_authz.kernel.permissions import graph
from pharmhub_authz.kernel.permissions.errors import (
    InvalidHierarchyError,
    NotFoundError,
    PrecedenceViolationError,
    RBACError,
    SelfReferenceError,
)
from pharmhub_authz.logging_config import get_logger

logger = get_logger(__name__)

_loop_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = weakref.WeakKeyDictionary()


def _hierarchy_lock() -> asyncio.Lock:
    """One write lock per running event loop."""
    loop = asyncio.get_running_loop()
    lock = _loop_locks.get(loop)
    if lock is None:
        lock = _loop_locks[loop] = asyncio.Lock()
    return lock


@asynccontextmanager
async def serialized_hierarchy_mutation(
    session: AsyncSession,
    settings: Optional[Settings] = None,
) -> AsyncIterator[None]:
    """
    Run load -> validate -> mutate -> commit as one serialized unit.

    Holds the in-process lock for the whole block and, on PostgreSQL, a
    transaction-scoped advisory lock that serializes other processes too.
    The advisory lock is taken inside a savepoint. Commits on success.
    Validation failures are raised before anything is written: they roll
    back only the savepoint, which hands the advisory lock back and keeps
    the caller's pending work. Any other error rolls back the transaction.
    """
    settings = settings or get_settings()
    async with _hierarchy_lock():
        savepoint = None
        try:
            if session.get_bind().dialect.name == "postgresql":
                savepoint = await session.begin_nested()
                await session.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"),
                    {"key": settings.hierarchy_lock_key},
                )
            yield
            if savepoint is not None:
                await savepoint.commit()
            await session.commit()
        except RBACError:
            if savepoint is not None:
                await savepoint.rollback()
            raise
        except Exception:
            await session.rollback()
            raise


class RoleHierarchyService:
    """
    Validated mutation and traversal of the role hierarchy.

    Usage:
        service = RoleHierarchyService(session)
        await service.add_child_role(admin.id, pharmacist.id)
        managed = await service.get_all_child_roles(admin.id)
    """

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.event_store = EventStore(session)

    async def add_child_role(self, parent_role_id: uuid.UUID, child_role_id: uuid.UUID) -> bool:
        """
        Add the edge ``parent -> child``.

        Checks run in this order: both roles exist, they differ, the edge
        would not close a cycle, the parent is strictly stronger. An edge
        that already exists is left alone.

        Returns:
            True if a new edge was stored, False if it already existed

        Raises:
            NotFoundError: Either role does not exist
            SelfReferenceError: parent and child are the same role
            InvalidHierarchyError: child is already an ancestor of parent
            PrecedenceViolationError: parent.precedence >= child.precedence
        """
        async with serialized_hierarchy_mutation(self.session, self.settings):
            parent = await self._get_role(parent_role_id, "Parent role")
            child = await self._get_role(child_role_id, "Child role")

            if parent.id == child.id:
                raise SelfReferenceError()

            edges = await self._load_adjacency()

            if graph.would_create_cycle(edges, parent.id, child.id):
                logger.warning(
                    "Rejected hierarchy edge %s -> %s: cycle",
                    parent.name.value, child.name.value,
                    extra={"parent_id": str(parent.id), "child_id": str(child.id)},
                )
                raise InvalidHierarchyError()

            self._check_precedence(parent, child)

            if child.id in edges.get(parent.id, set()):
                logger.debug("Hierarchy edge %s -> %s already present", parent.name.value, child.name.value)
                return False

            await self.session.execute(
                insert(role_hierarchy).values(parent_role_id=parent.id, child_role_id=child.id)
            )
            await self._log_edge(EventType.HIERARCHY_EDGE_ADDED, parent, child)

        logger.info(
            "Added role %s as child of %s", child.name.value, parent.name.value,
            extra={"parent_id": str(parent.id), "child_id": str(child.id)},
        )
        return True

    async def remove_child_role(self, parent_role_id: uuid.UUID, child_role_id: uuid.UUID) -> bool:
        """
        Remove the edge ``parent -> child`` if present.

        Edges further down are untouched; descendants of the child stay its
        descendants.

        Returns:
            True if an edge was removed, False if there was none
        """
        async with serialized_hierarchy_mutation(self.session, self.settings):
            parent = await self._get_role(parent_role_id, "Parent role")
            child = await self._get_role(child_role_id, "Child role")

            result = await self.session.execute(
                delete(role_hierarchy).where(
                    and_(
                        role_hierarchy.c.parent_role_id == parent.id,
                        role_hierarchy.c.child_role_id == child.id,
                    )
                )
            )
            if not result.rowcount:
                logger.debug("No hierarchy edge %s -> %s to remove", parent.name.value, child.name.value)
                return False

            await self._log_edge(EventType.HIERARCHY_EDGE_REMOVED, parent, child)

        logger.info("Removed role %s as child of %s", child.name.value, parent.name.value)
        return True

    async def get_direct_child_roles(self, role_id: uuid.UUID) -> Set[Role]:
        role = await self._get_role(role_id, "Role")
        edges = await self._load_adjacency()
        return await self._roles_by_ids(edges.get(role.id, set()))

    async def get_all_child_roles(self, role_id: uuid.UUID) -> Set[Role]:
        """Every role reachable from ``role_id`` by following edges, excluding itself."""
        role = await self._get_role(role_id, "Role")
        edges = await self._load_adjacency()
        return await self._roles_by_ids(graph.descendants_bfs(edges, role.id))

    async def get_all_parent_roles(self, role_id: uuid.UUID) -> Set[Role]:
        """Every role from which ``role_id`` is reachable, i.e. the roles that may manage it."""
        role = await self._get_role(role_id, "Role")
        edges = await self._load_adjacency()
        return await self._roles_by_ids(graph.ancestors(edges, role.id))

    async def can_manage(self, manager_role_id: uuid.UUID, target_role_id: uuid.UUID) -> bool:
        """True if ``target`` lies in the administrative scope of ``manager``."""
        manager = await self._get_role(manager_role_id, "Role")
        target = await self._get_role(target_role_id, "Role")
        edges = await self._load_adjacency()
        return graph.is_reachable(edges, manager.id, target.id)

    async def get_roles_by_precedence(self) -> List[Role]:
        """All roles, strongest first; equal precedence is ordered by name."""
        result = await self.session.execute(
            select(Role).order_by(Role.precedence, Role.name, Role.id)
        )
        return list(result.scalars().all())

    async def get_edges(self) -> Dict[uuid.UUID, Set[uuid.UUID]]:
        """Snapshot of the whole graph as ``{parent_id: {child_id, ...}}``."""
        return await self._load_adjacency()

    async def check_incident_edges(self, role: Role, precedence: int) -> None:
        """
        Verify that giving ``role`` the new ``precedence`` keeps every edge
        touching it strictly precedence-increasing.

        Must be called inside :func:`serialized_hierarchy_mutation`.
        """
        edges = await self._load_adjacency()
        children = edges.get(role.id, set())
        parents = {p for p, kids in edges.items() if role.id in kids}

        for other in await self._roles_by_ids(children):
            if not precedence < other.precedence:
                raise PrecedenceViolationError(
                    f"Role {role.name.value} would no longer be stronger than its child "
                    f"{other.name.value} (precedence {precedence} vs {other.precedence})"
                )
        for other in await self._roles_by_ids(parents):
            if not other.precedence < precedence:
                raise PrecedenceViolationError(
                    f"Role {role.name.value} would no longer be weaker than its parent "
                    f"{other.name.value} (precedence {precedence} vs {other.precedence})"
                )

    def _check_precedence(self, parent: Role, child: Role) -> None:
        if not parent.precedence < child.precedence:
            logger.warning(
                "Rejected hierarchy edge %s -> %s: precedence %s >= %s",
                parent.name.value, child.name.value, parent.precedence, child.precedence,
            )
            raise PrecedenceViolationError(
                "Child role must have lower precedence than parent role. "
                f"Parent precedence: {parent.precedence}, Child precedence: {child.precedence}"
            )

    async def _get_role(self, role_id: uuid.UUID, label: str) -> Role:
        # Re-read: precedence may have changed in another session
        role = await self.session.get(Role, role_id, populate_existing=True)
        if role is None:
            raise NotFoundError(label, role_id)
        return role

    async def _load_adjacency(self) -> Dict[uuid.UUID, Set[uuid.UUID]]:
        result = await self.session.execute(
            select(role_hierarchy.c.parent_role_id, role_hierarchy.c.child_role_id)
        )
        return graph.build_adjacency(result.all())

    async def _roles_by_ids(self, role_ids: Iterable[uuid.UUID]) -> Set[Role]:
        ids = set(role_ids)
        if not ids:
            return set()
        result = await self.session.execute(
            select(Role).where(Role.id.in_(ids)).execution_options(populate_existing=True)
        )
        return set(result.scalars().all())

    async def _log_edge(self, event_type: EventType, parent: Role, child: Role) -> None:
        await self.event_store.log_from_model(
            event_type=event_type,
            entity_type="role",
            entity_id=parent.id,
            payload_model=HierarchyEdgeEvent(
                parent_role=parent.name.value,
                child_role=child.name.value,
                parent_role_id=parent.id,
                child_role_id=child.id,
            ),
        )
