"""
Error taxonomy for flows.

Structural graph errors abort order computation, branch connection errors
reject an edge before it is persisted, validation errors surface field-level
detail, and action errors are recorded per step by the runner.
"""

from typing import Any


class FlowsError(Exception):
    """Base exception for flows."""


# ---------------------------------------------------------------------------
# Graph / traversal
# ---------------------------------------------------------------------------


class GraphStructureError(FlowsError):
    """The graph cannot be ordered (cycle or unreachable node)."""


class NodeNotFoundError(GraphStructureError, KeyError):
    """A node id was looked up that is not part of the graph."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f'node "{node_id}" is not in the graph')

    def __str__(self) -> str:
        return self.args[0]


# ---------------------------------------------------------------------------
# Edge creation (branch / scope rules)
# ---------------------------------------------------------------------------


class BranchConnectionError(FlowsError):
    """Cannot create this connection."""


class WorkflowMismatchError(BranchConnectionError):
    pass


class SelfReferenceError(BranchConnectionError):
    pass


class SingleSuccessorError(BranchConnectionError):
    pass


class MissingBranchKeyError(BranchConnectionError):
    pass


class BranchLimitError(BranchConnectionError):
    pass


class DuplicateBranchKeyError(BranchConnectionError):
    pass


class UnexpectedBranchKeyError(BranchConnectionError):
    pass


class UnsupportedBranchKeyError(BranchConnectionError):
    pass


class ScopeEntryError(BranchConnectionError):
    pass


class CrossScopeError(BranchConnectionError):
    pass


class BranchMetadataError(BranchConnectionError):
    pass


class BranchLegMismatchError(BranchConnectionError):
    pass


# ---------------------------------------------------------------------------
# Node contract / execution
# ---------------------------------------------------------------------------


class NodeValidationError(FlowsError):
    """Parameters, inputs or an emitted output failed schema validation."""

    def __init__(
        self,
        node_type: str,
        target: str,
        errors: list[dict[str, Any]] | None = None,
    ):
        self.node_type = node_type
        self.target = target
        self.errors = errors or []
        fields = ", ".join(
            ".".join(str(part) for part in err.get("loc", ())) or "<root>" for err in self.errors
        )
        message = f"Invalid {target} for node {node_type}"
        if fields:
            message += f": {fields}"
        super().__init__(message)


class UnknownPortError(FlowsError):
    """A handler emitted on a port its definition does not declare."""

    def __init__(self, port_id: str, node_type: str):
        self.port_id = port_id
        self.node_type = node_type
        super().__init__(f'Unknown output port "{port_id}" on node {node_type}')


class UnregisteredNodeTypeError(FlowsError, LookupError):
    """No executor is registered for a node type tag."""

    def __init__(self, node_type: str | None):
        self.node_type = node_type
        super().__init__(f"Unregistered node type: {node_type!r}")


class ActionError(FlowsError):
    """An external action (HTTP call, etc.) failed."""

    retryable = True


class HttpStatusError(ActionError):
    """Remote endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, url: str, body: str = ""):
        self.status_code = status_code
        self.url = url
        self.body = body
        self.retryable = status_code >= 500 or status_code == 429
        super().__init__(f"HTTP {status_code} from {url}")


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------


class JournalError(FlowsError):
    """Illegal journal transition."""
