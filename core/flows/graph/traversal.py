"""
Deterministic traversal - canvas-ordered execution order for a graph.

Two strategies are available:

canvas_dfs (default)
    Position-ordered DFS with backtracking. Follow the current path while
    it has an eligible child (topmost first); when a node has several
    eligible children remember the rest on a fork stack. When the path tip
    runs dry, resume from the most recent fork that still has an eligible
    child; only when the tip and every fork are exhausted jump to the
    topmost eligible node anywhere (disconnected components, delayed joins).

branch_kahn
    Kahn's algorithm drained one branch segment at a time. A segment is the
    (scope_id, branch_key) pair stored on a node; ready nodes of the segment
    just visited are taken first (canvas order), otherwise the topmost ready
    node overall opens the next segment.

Both raise GraphStructureError when some node never reaches in-degree zero.
Neither is a plain topological sort: the order is a product decision
("follow the primary flow, then catch up on side branches").
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from flows.errors import GraphStructureError
from flows.graph.model import Graph, GraphSnapshot, NodeKey, build_graph, canvas_sort_key

logger = logging.getLogger(__name__)

CYCLE_MESSAGE = "graph contains a cycle or unreachable node"


class TraversalStrategy(StrEnum):
    """Which ordering algorithm computes the execution order."""

    CANVAS_DFS = "canvas_dfs"
    BRANCH_KAHN = "branch_kahn"


@dataclass
class ForkEntry:
    """A node with more than one eligible child, and the children not yet taken."""

    fork: NodeKey
    remaining: list[NodeKey] = field(default_factory=list)


def _sorted_by_canvas(graph: Graph, keys) -> list[NodeKey]:
    return sorted(keys, key=lambda key: canvas_sort_key(graph, key))


def _eligible_children(graph: Graph, node_key: NodeKey, eligible: set[NodeKey]) -> list[NodeKey]:
    return _sorted_by_canvas(
        graph, [child for child in graph.out_neighbors(node_key) if child in eligible]
    )


def _initial_indegrees(graph: Graph) -> tuple[dict[NodeKey, int], set[NodeKey]]:
    indegree: dict[NodeKey, int] = {}
    eligible: set[NodeKey] = set()
    for key in graph.nodes():
        degree = graph.in_degree(key)
        indegree[key] = degree
        if degree == 0:
            eligible.add(key)
    return indegree, eligible


def _release_children(
    graph: Graph,
    node_key: NodeKey,
    indegree: dict[NodeKey, int],
    eligible: set[NodeKey],
) -> None:
    for child in graph.out_neighbors(node_key):
        indegree[child] -= 1
        if indegree[child] == 0:
            eligible.add(child)


def topo_path_by_canvas(graph: Graph) -> list[NodeKey]:
    """
    Topologically valid order following position-ordered DFS with backtracking.

    Raises:
        GraphStructureError: if a cycle leaves nodes that never become eligible
    """
    total = len(graph)
    if total == 0:
        return []

    indegree, eligible = _initial_indegrees(graph)
    order: list[NodeKey] = []
    fork_stack: list[ForkEntry] = []
    active: NodeKey | None = None

    while len(order) < total:
        next_key: NodeKey | None = None

        # 1. Extend the current path
        if active is not None:
            children = _eligible_children(graph, active, eligible)
            if not children:
                active = None
            else:
                next_key = children[0]
                if len(children) >= 2:
                    fork_stack.append(ForkEntry(fork=active, remaining=children[1:]))

        # 2. Backtrack to the most recent fork with an eligible child.
        # Eligibility is global, so each entry is refreshed before use.
        while next_key is None and fork_stack:
            entry = fork_stack[-1]
            entry.remaining = _eligible_children(graph, entry.fork, eligible)
            if not entry.remaining:
                fork_stack.pop()
                continue
            next_key = entry.remaining.pop(0)

        # 3. Global restart at the topmost eligible node
        if next_key is None and eligible:
            next_key = _sorted_by_canvas(graph, eligible)[0]

        if next_key is None:
            visited = set(order)
            unreached = [key for key in graph.nodes() if key not in visited]
            logger.error("Traversal stuck with %d unreached nodes: %s", len(unreached), unreached)
            raise GraphStructureError(CYCLE_MESSAGE)

        order.append(next_key)
        eligible.discard(next_key)
        _release_children(graph, next_key, indegree, eligible)
        active = next_key

    return order


def _segment_of(graph: Graph, node_key: NodeKey) -> tuple[str | None, str | None]:
    node = graph.node(node_key)
    return (node.scope_id, node.branch_key)


def branch_kahn_order(graph: Graph) -> list[NodeKey]:
    """
    Kahn drain that finishes the current branch segment before switching.

    Raises:
        GraphStructureError: if a cycle leaves nodes that never become ready
    """
    total = len(graph)
    indegree, ready = _initial_indegrees(graph)
    order: list[NodeKey] = []
    segment: tuple[str | None, str | None] | None = None

    while len(order) < total:
        if not ready:
            raise GraphStructureError(CYCLE_MESSAGE)

        same_segment = [key for key in ready if _segment_of(graph, key) == segment]
        pool = same_segment or list(ready)
        next_key = _sorted_by_canvas(graph, pool)[0]

        order.append(next_key)
        ready.discard(next_key)
        _release_children(graph, next_key, indegree, ready)
        segment = _segment_of(graph, next_key)

    return order


_STRATEGIES = {
    TraversalStrategy.CANVAS_DFS: topo_path_by_canvas,
    TraversalStrategy.BRANCH_KAHN: branch_kahn_order,
}


def compute_execution_order(
    graph: Graph,
    strategy: TraversalStrategy | str = TraversalStrategy.CANVAS_DFS,
) -> list[NodeKey]:
    """Run the traversal named by ``strategy`` over the whole graph."""
    return _STRATEGIES[TraversalStrategy(strategy)](graph)


def compute_branch_ordered_execution_auto(
    data: GraphSnapshot | dict[str, Any],
    strategy: TraversalStrategy | str = TraversalStrategy.CANVAS_DFS,
) -> list[NodeKey]:
    """
    Execution order for a workflow snapshot.

    Isolated nodes (no incoming or outgoing edge) stay valid in the graph
    but are left out of the execution order.
    """
    graph = build_graph(data)
    order = compute_execution_order(graph, strategy)
    involved = graph.connected_nodes()
    return [key for key in order if key in involved]


def assert_topological(order: list[NodeKey], graph: Graph) -> None:
    """
    Check that ``order`` is a permutation of the graph's nodes and respects
    every edge.

    Raises:
        GraphStructureError: describing the first violation
    """
    if sorted(order) != sorted(graph.nodes()):
        raise GraphStructureError("order is not a permutation of the graph's nodes")
    index = {key: position for position, key in enumerate(order)}
    for source, target in graph.edges():
        if index[source] >= index[target]:
            raise GraphStructureError(f"edge {source} -> {target} violates topological order")
