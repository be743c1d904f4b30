"""
flows - graph-ordered, branch-aware workflow runtime.

Turns a workflow snapshot (nodes with canvas positions, edges, branch
metadata) into a deterministic execution order and runs it one step at a
time against typed node definitions.
"""

from flows.config import RuntimeConfig
from flows.graph import (
    GraphSnapshot,
    build_graph,
    compute_branch_ordered_execution_auto,
    plan_edge_connection,
    topo_path_by_canvas,
)
from flows.nodes import NodeRegistry, create_node_executor, default_registry, define_node
from flows.runtime import StepJournal, WorkflowRunner

__version__ = "0.1.0"

__all__ = [
    "RuntimeConfig",
    "GraphSnapshot",
    "build_graph",
    "topo_path_by_canvas",
    "compute_branch_ordered_execution_auto",
    "plan_edge_connection",
    "NodeRegistry",
    "default_registry",
    "define_node",
    "create_node_executor",
    "StepJournal",
    "WorkflowRunner",
]
