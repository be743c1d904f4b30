"""
Branch/scope rules for creating edges.

plan_edge_connection() is called before an edge is persisted. It never
mutates anything: it either raises a BranchConnectionError subclass naming
the violated rule, or returns the branch key the edge should carry and the
scope/branch metadata the target node should inherit.

Rules, checked in order (first violation wins):
1. Source and target belong to the requested workflow.
2. No self-referential edges.
3. A regular (non-branch) node has at most one outgoing edge.
4. A branch node edge names a leg ("if"/"else"); at most two legs, each once.
5. Only branch nodes may name a leg.
6. Scope: no entering a branch scope from outside it, no cross-scope edges.
7. Branch leg: same as 6, for the leg key.

Metadata propagates one edge at a time: a branch node's scope is its own id
and its branch is the leg being connected; any other node carries the
scope/branch stored on it, and hands whatever the target lacks down the leg.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from flows.errors import (
    BranchLegMismatchError,
    BranchLimitError,
    BranchMetadataError,
    CrossScopeError,
    DuplicateBranchKeyError,
    MissingBranchKeyError,
    ScopeEntryError,
    SelfReferenceError,
    SingleSuccessorError,
    UnexpectedBranchKeyError,
    UnsupportedBranchKeyError,
    WorkflowMismatchError,
)

BranchKey = Literal["if", "else"]
BRANCH_KEYS: tuple[BranchKey, ...] = ("if", "else")
BRANCH_NODE_TYPE = "branch"

_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class GraphNodeRef(BaseModel):
    """The slice of a stored node the branch rules look at."""

    id: str
    workflow_id: str
    type: str
    branch_scope_id: str | None = None
    branch_key: str | None = None

    model_config = _WIRE


class GraphEdgeRef(BaseModel):
    """An existing edge, as far as the branch rules are concerned."""

    id: str | None = None
    source_node_id: str
    target_node_id: str
    branch_key: str | None = None

    model_config = _WIRE


class BranchMetadataAssignment(BaseModel):
    """Fields the target node should adopt. Only set fields are assigned."""

    scope_id: str | None = None
    branch_key: BranchKey | None = None

    model_config = _WIRE

    def is_empty(self) -> bool:
        return self.scope_id is None and self.branch_key is None


class EdgeConnectionPlan(BaseModel):
    """Result of planning an edge: its branch key and the target's new metadata."""

    edge_branch_key: BranchKey | None = None
    assignment: BranchMetadataAssignment = Field(default_factory=BranchMetadataAssignment)

    model_config = _WIRE


def normalize_branch_key(value: str | None) -> BranchKey | None:
    """Empty → None, "if"/"else" → itself, anything else is rejected."""
    if not value:
        return None
    if value in BRANCH_KEYS:
        return value  # type: ignore[return-value]
    raise UnsupportedBranchKeyError(f'Unsupported branch key "{value}"')


def is_branch_node_type(node_type: str | None) -> bool:
    return node_type == BRANCH_NODE_TYPE


def scope_of(node: GraphNodeRef) -> str | None:
    """A branch node opens its own scope; other nodes carry a stored one."""
    if is_branch_node_type(node.type):
        return node.id
    return node.branch_scope_id or None


def branch_of(node: GraphNodeRef, explicit: BranchKey | None = None) -> BranchKey | None:
    """A branch node's branch is the leg being connected; other nodes carry a stored one."""
    if is_branch_node_type(node.type):
        return explicit
    return normalize_branch_key(node.branch_key)


def _ensure_same_workflow(node: GraphNodeRef, workflow_id: str) -> None:
    if node.workflow_id != workflow_id:
        raise WorkflowMismatchError("Nodes must belong to the same workflow.")


def _ensure_branch_limits(existing: Sequence[GraphEdgeRef], branch_key: BranchKey) -> None:
    if len(existing) >= len(BRANCH_KEYS):
        raise BranchLimitError("Branch nodes may only define two outgoing edges.")
    for edge in existing:
        if normalize_branch_key(edge.branch_key) == branch_key:
            raise DuplicateBranchKeyError(f'Branch already defines a "{branch_key}" edge.')


def _ensure_scope_compatibility(source_scope: str | None, target_scope: str | None) -> None:
    if target_scope and not source_scope:
        raise ScopeEntryError("Cannot connect nodes inside a branch from outside the branch.")
    if source_scope and target_scope and source_scope != target_scope:
        raise CrossScopeError("Cross-branch edges are not allowed.")


def _ensure_branch_compatibility(
    source_branch: BranchKey | None, target_branch: BranchKey | None
) -> None:
    if target_branch and not source_branch:
        raise BranchMetadataError("Branch metadata must remain consistent inside a branch.")
    if source_branch and target_branch and source_branch != target_branch:
        raise BranchLegMismatchError("Cannot connect nodes from different branch legs.")


def plan_edge_connection(
    workflow_id: str,
    source_node: GraphNodeRef,
    target_node: GraphNodeRef,
    existing_outgoing_edges: Sequence[GraphEdgeRef] = (),
    requested_branch_key: str | None = None,
) -> EdgeConnectionPlan:
    """
    Decide whether source→target may be created and how metadata propagates.

    Args:
        workflow_id: Workflow the edge is being created in
        source_node: Stored source node
        target_node: Stored target node
        existing_outgoing_edges: Edges already leaving the source
        requested_branch_key: Leg requested by the caller ("if"/"else")

    Returns:
        EdgeConnectionPlan with the edge's branch key and the target assignment

    Raises:
        BranchConnectionError: subclass naming the first violated rule
    """
    _ensure_same_workflow(source_node, workflow_id)
    _ensure_same_workflow(target_node, workflow_id)

    if source_node.id == target_node.id:
        raise SelfReferenceError("Self-referential edges are not allowed.")

    source_is_branch = is_branch_node_type(source_node.type)
    if not source_is_branch and len(existing_outgoing_edges) >= 1:
        raise SingleSuccessorError("Regular nodes may only have one outgoing edge.")

    branch_key: BranchKey | None = None
    if source_is_branch:
        branch_key = normalize_branch_key(requested_branch_key)
        if branch_key is None:
            raise MissingBranchKeyError("Branch edges must include a branch key.")
        _ensure_branch_limits(existing_outgoing_edges, branch_key)
    elif requested_branch_key:
        raise UnexpectedBranchKeyError("Only branch nodes may specify a branch key.")

    source_scope = scope_of(source_node)
    source_branch = branch_of(source_node, branch_key)
    target_scope = target_node.branch_scope_id or None
    target_branch = normalize_branch_key(target_node.branch_key)

    _ensure_scope_compatibility(source_scope, target_scope)
    _ensure_branch_compatibility(source_branch, target_branch)

    assignment = BranchMetadataAssignment(
        scope_id=source_scope if source_scope and not target_scope else None,
        branch_key=source_branch if source_branch and not target_branch else None,
    )
    return EdgeConnectionPlan(
        edge_branch_key=branch_key if source_is_branch else source_branch,
        assignment=assignment,
    )


def apply_assignment(node: GraphNodeRef, plan: EdgeConnectionPlan) -> GraphNodeRef:
    """Return ``node`` with the plan's assignment applied (for the persistence caller)."""
    update: dict[str, str] = {}
    if plan.assignment.scope_id is not None:
        update["branch_scope_id"] = plan.assignment.scope_id
    if plan.assignment.branch_key is not None:
        update["branch_key"] = plan.assignment.branch_key
    return node.model_copy(update=update) if update else node
