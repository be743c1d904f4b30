"""
Graph Model - Directed graph built from a workflow snapshot.

The persistence layer hands us node and edge snapshots (ids may be strings
or numbers, positions may be missing or malformed). build_graph() normalizes
them into a Graph whose node keys are canonical strings and whose positions
are always finite.

An edge whose endpoint is missing (partial or stale data) is dropped
rather than rejected.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from flows.errors import NodeNotFoundError

logger = logging.getLogger(__name__)

NodeKey = str


class CanvasPos(BaseModel):
    """A node's position on the canvas."""

    x: float = 0.0
    y: float = 0.0

    model_config = ConfigDict(frozen=True)


class NodeSnapshot(BaseModel):
    """
    A node as stored by the persistence layer.

    Accepts the wire shape ``{"_id": ..., "position": {...}, "branchScopeId": ...}``
    as well as snake_case field names.
    """

    id: str | int | float = Field(validation_alias=AliasChoices("id", "_id"))
    position: Any = None  # normalized by pos_or_default(), may be malformed
    type: str | None = None
    name: str | None = None
    workflow_id: str | None = None
    branch_scope_id: str | None = None
    branch_key: str | None = None
    parameters: Any = Field(default_factory=dict)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    @property
    def key(self) -> NodeKey:
        return to_key(self.id)


class EdgeSnapshot(BaseModel):
    """A directed connection between two stored nodes."""

    id: str | None = None
    source_node_id: str | int | float = Field(description="Source node id")
    target_node_id: str | int | float = Field(description="Target node id")
    source_handle: str | None = None
    target_handle: str | None = None
    branch_key: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class GraphSnapshot(BaseModel):
    """Point-in-time read of a workflow's nodes and edges."""

    workflow_id: str | None = None
    nodes: list[NodeSnapshot] = Field(default_factory=list)
    edges: list[EdgeSnapshot] = Field(default_factory=list)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def get_node(self, key: NodeKey) -> NodeSnapshot | None:
        for node in self.nodes:
            if node.key == key:
                return node
        return None

    def node_index(self) -> dict[NodeKey, NodeSnapshot]:
        """Nodes by key; the first node wins when keys repeat, as in get_node()."""
        index: dict[NodeKey, NodeSnapshot] = {}
        for node in self.nodes:
            index.setdefault(node.key, node)
        return index


def to_key(node_identifier: str | int | float) -> NodeKey:
    """Canonical string key for a node id; ``7``, ``7.0`` and ``"7"`` coincide."""
    if isinstance(node_identifier, float) and node_identifier.is_integer():
        return str(int(node_identifier))
    return str(node_identifier)


def _finite_or_zero(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def pos_or_default(position: Any) -> CanvasPos:
    """Normalize a raw position; x and y each fall back to 0 independently."""
    if isinstance(position, CanvasPos):
        return position
    if isinstance(position, dict):
        raw_x, raw_y = position.get("x"), position.get("y")
    else:
        raw_x, raw_y = getattr(position, "x", None), getattr(position, "y", None)
    return CanvasPos(x=_finite_or_zero(raw_x), y=_finite_or_zero(raw_y))


@dataclass
class GraphNode:
    """A node in the directed graph with its adjacency."""

    key: NodeKey
    position: Any = None
    node_type: str | None = None
    scope_id: str | None = None
    branch_key: str | None = None
    outgoing: list[NodeKey] = field(default_factory=list)
    incoming: list[NodeKey] = field(default_factory=list)


class Graph:
    """
    Directed graph keyed by canonical node id.

    Node and edge insertion order is preserved. Parallel edges collapse to
    one. Degrees are derived from the adjacency lists.
    """

    def __init__(self) -> None:
        self._nodes: dict[NodeKey, GraphNode] = {}

    def add_node(
        self,
        key: NodeKey,
        position: Any = None,
        node_type: str | None = None,
        scope_id: str | None = None,
        branch_key: str | None = None,
    ) -> GraphNode:
        node = GraphNode(
            key=key,
            position=position,
            node_type=node_type,
            scope_id=scope_id,
            branch_key=branch_key,
        )
        self._nodes[key] = node
        return node

    def add_edge(self, source: NodeKey, target: NodeKey) -> bool:
        """Add source→target. Returns False if an endpoint is missing or the edge exists."""
        if source not in self._nodes or target not in self._nodes:
            return False
        if target in self._nodes[source].outgoing:
            return False
        self._nodes[source].outgoing.append(target)
        self._nodes[target].incoming.append(source)
        return True

    def has_node(self, key: NodeKey) -> bool:
        return key in self._nodes

    def node(self, key: NodeKey) -> GraphNode:
        try:
            return self._nodes[key]
        except KeyError:
            raise NodeNotFoundError(key) from None

    def nodes(self) -> list[NodeKey]:
        return list(self._nodes)

    def edges(self) -> list[tuple[NodeKey, NodeKey]]:
        return [(node.key, target) for node in self._nodes.values() for target in node.outgoing]

    def out_neighbors(self, key: NodeKey) -> list[NodeKey]:
        return list(self.node(key).outgoing)

    def in_neighbors(self, key: NodeKey) -> list[NodeKey]:
        return list(self.node(key).incoming)

    def in_degree(self, key: NodeKey) -> int:
        return len(self.node(key).incoming)

    def out_degree(self, key: NodeKey) -> int:
        return len(self.node(key).outgoing)

    def connected_nodes(self) -> set[NodeKey]:
        """Nodes touching at least one edge."""
        return {key for key, node in self._nodes.items() if node.outgoing or node.incoming}

    def __contains__(self, key: object) -> bool:
        return key in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[NodeKey]:
        return iter(self._nodes)


def _coerce_nodes(nodes: Iterable[Any]) -> list[NodeSnapshot]:
    return [n if isinstance(n, NodeSnapshot) else NodeSnapshot.model_validate(n) for n in nodes]


def _coerce_edges(edges: Iterable[Any]) -> list[EdgeSnapshot]:
    return [e if isinstance(e, EdgeSnapshot) else EdgeSnapshot.model_validate(e) for e in edges]


def build_graph(
    data: GraphSnapshot | dict[str, Any] | Iterable[Any],
    edges: Iterable[Any] | None = None,
) -> Graph:
    """
    Build a Graph from a snapshot.

    Accepts either ``build_graph(snapshot)`` (a GraphSnapshot or a dict with
    ``nodes``/``edges``) or ``build_graph(nodes, edges)``.
    """
    if edges is None:
        snapshot = data if isinstance(data, GraphSnapshot) else GraphSnapshot.model_validate(data)
        node_items, edge_items = snapshot.nodes, snapshot.edges
    else:
        node_items, edge_items = _coerce_nodes(data), _coerce_edges(edges)

    graph = Graph()
    for node in node_items:
        graph.add_node(
            node.key,
            position=pos_or_default(node.position),
            node_type=node.type,
            scope_id=node.branch_scope_id or None,
            branch_key=node.branch_key or None,
        )

    for edge in edge_items:
        source, target = to_key(edge.source_node_id), to_key(edge.target_node_id)
        if not (graph.has_node(source) and graph.has_node(target)):
            logger.debug("Dropping dangling edge %s -> %s", source, target)
            continue
        graph.add_edge(source, target)

    return graph


def pos_of(graph: Graph, node_key: NodeKey) -> CanvasPos:
    """Position of a node; origin if the stored position is malformed."""
    if not graph.has_node(node_key):
        raise NodeNotFoundError(node_key)
    return pos_or_default(graph.node(node_key).position)


def canvas_sort_key(graph: Graph, node_key: NodeKey) -> tuple[float, float, str]:
    """Sort key for canvas order: top to bottom, left to right, then id."""
    position = pos_of(graph, node_key)
    return (position.y, position.x, node_key)


def by_canvas(graph: Graph, a: NodeKey, b: NodeKey) -> int:
    """Three-way comparator matching canvas_sort_key (for functools.cmp_to_key)."""
    key_a, key_b = canvas_sort_key(graph, a), canvas_sort_key(graph, b)
    return (key_a > key_b) - (key_a < key_b)
