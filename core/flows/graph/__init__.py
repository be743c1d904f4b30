"""Graph module - workflow graph model, deterministic traversal and branch rules."""

from flows.graph.branching import (
    BRANCH_KEYS,
    BranchMetadataAssignment,
    EdgeConnectionPlan,
    GraphEdgeRef,
    GraphNodeRef,
    apply_assignment,
    is_branch_node_type,
    normalize_branch_key,
    plan_edge_connection,
)
from flows.graph.model import (
    CanvasPos,
    EdgeSnapshot,
    Graph,
    GraphNode,
    GraphSnapshot,
    NodeSnapshot,
    build_graph,
    by_canvas,
    canvas_sort_key,
    pos_of,
    pos_or_default,
    to_key,
)
from flows.graph.traversal import (
    TraversalStrategy,
    assert_topological,
    branch_kahn_order,
    compute_branch_ordered_execution_auto,
    compute_execution_order,
    topo_path_by_canvas,
)

__all__ = [
    # Model
    "CanvasPos",
    "NodeSnapshot",
    "EdgeSnapshot",
    "GraphSnapshot",
    "Graph",
    "GraphNode",
    "build_graph",
    "to_key",
    "pos_or_default",
    "pos_of",
    "by_canvas",
    "canvas_sort_key",
    # Traversal
    "TraversalStrategy",
    "topo_path_by_canvas",
    "branch_kahn_order",
    "compute_execution_order",
    "compute_branch_ordered_execution_auto",
    "assert_topological",
    # Branching
    "BRANCH_KEYS",
    "GraphNodeRef",
    "GraphEdgeRef",
    "BranchMetadataAssignment",
    "EdgeConnectionPlan",
    "normalize_branch_key",
    "is_branch_node_type",
    "plan_edge_connection",
    "apply_assignment",
]
