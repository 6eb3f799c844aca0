"""
Traversal over the role hierarchy as an adjacency map.

The hierarchy service loads all edges once per call and works on plain
``{parent_id: {child_id, ...}}`` maps, so every check within a call sees
one consistent graph.
"""

from collections import deque
from typing import Dict, FrozenSet, Hashable, Iterable, Mapping, Optional, Set, Tuple, TypeVar

Node = TypeVar("Node", bound=Hashable)

Adjacency = Mapping[Node, Set[Node]]

_EXHAUSTED = object()


def build_adjacency(edges: Iterable[Tuple[Node, Node]]) -> Dict[Node, Set[Node]]:
    """Group ``(parent, child)`` pairs by parent."""
    graph: Dict[Node, Set[Node]] = {}
    for parent, child in edges:
        graph.setdefault(parent, set()).add(child)
    return graph


def reverse_adjacency(graph: Adjacency) -> Dict[Node, Set[Node]]:
    reverse: Dict[Node, Set[Node]] = {}
    for parent, children in graph.items():
        for child in children:
            reverse.setdefault(child, set()).add(parent)
    return reverse


def descendants_bfs(graph: Adjacency, start: Node) -> FrozenSet[Node]:
    """All nodes reachable from ``start`` by following edges forward, excluding ``start``."""
    seen: Set[Node] = set()
    queue = deque(graph.get(start, ()))
    while queue:
        node = queue.popleft()
        if node in seen:
            continue
        seen.add(node)
        queue.extend(graph.get(node, ()))
    seen.discard(start)
    return frozenset(seen)


def descendants_dfs(graph: Adjacency, start: Node) -> FrozenSet[Node]:
    """Same result as :func:`descendants_bfs`, visiting depth-first."""
    seen: Set[Node] = set()
    stack = list(graph.get(start, ()))
    while stack:
        node = stack.pop()
        if node in seen:
            continue
        seen.add(node)
        stack.extend(graph.get(node, ()))
    seen.discard(start)
    return frozenset(seen)


def ancestors(graph: Adjacency, node: Node) -> FrozenSet[Node]:
    """All nodes from which ``node`` is reachable."""
    return descendants_bfs(reverse_adjacency(graph), node)


def is_reachable(graph: Adjacency, source: Node, target: Node) -> bool:
    """True if a path ``source -> ... -> target`` of at least one edge exists."""
    seen: Set[Node] = set()
    queue = deque(graph.get(source, ()))
    while queue:
        node = queue.popleft()
        if node == target:
            return True
        if node in seen:
            continue
        seen.add(node)
        queue.extend(graph.get(node, ()))
    return False


def would_create_cycle(graph: Adjacency, parent: Node, child: Node) -> bool:
    """Adding ``parent -> child`` closes a cycle iff ``parent`` is reachable from ``child``."""
    return parent == child or is_reachable(graph, child, parent)


def find_cycle(graph: Adjacency) -> Optional[Tuple[Node, ...]]:
    """Return one directed cycle as a node tuple, or None if the graph is acyclic."""
    # Iterative three-colour DFS
    white, grey, black = 0, 1, 2
    colour: Dict[Node, int] = {}
    nodes = set(graph)
    for children in graph.values():
        nodes.update(children)

    for root in nodes:
        if colour.get(root, white) != white:
            continue
        path = [root]
        colour[root] = grey
        iterators = [iter(graph.get(root, ()))]
        while iterators:
            child = next(iterators[-1], _EXHAUSTED)
            if child is _EXHAUSTED:
                colour[path.pop()] = black
                iterators.pop()
                continue
            state = colour.get(child, white)
            if state == grey:
                return tuple(path[path.index(child):]) + (child,)
            if state == white:
                colour[child] = grey
                path.append(child)
                iterators.append(iter(graph.get(child, ())))
    return None
