"""
Node Registry - maps the type tag stored on a workflow node to the executor
that runs it.

The registry is an explicit object handed to the runner, so tests and
embedders can register their own executors next to (or instead of) the
built-in catalog.
"""

import logging
from typing import Any

from flows.errors import UnregisteredNodeTypeError
from flows.nodes.definition import NodeDefinition, hydrate_parameters
from flows.nodes.executor import NodeExecutor

logger = logging.getLogger(__name__)


class NodeRegistry:
    """Type tag -> NodeExecutor lookup."""

    def __init__(self) -> None:
        self._executors: dict[str, NodeExecutor] = {}

    def register(self, type_tag: str, executor: NodeExecutor, replace: bool = False) -> None:
        """
        Register an executor under a type tag.

        Raises:
            ValueError: if the tag is taken and ``replace`` is False
        """
        if type_tag in self._executors and not replace:
            raise ValueError(f"Node type {type_tag!r} is already registered")
        self._executors[type_tag] = executor
        logger.debug("Registered node type %s -> %s", type_tag, executor.definition.id)

    def get(self, type_tag: str | None) -> NodeExecutor:
        """
        Raises:
            UnregisteredNodeTypeError: no executor for ``type_tag``
        """
        executor = self.find(type_tag)
        if executor is None:
            raise UnregisteredNodeTypeError(type_tag)
        return executor

    def find(self, type_tag: str | None) -> NodeExecutor | None:
        if type_tag is None:
            return None
        return self._executors.get(type_tag)

    def list_types(self) -> list[str]:
        return sorted(self._executors)

    def definitions(self) -> dict[str, NodeDefinition]:
        return {tag: executor.definition for tag, executor in sorted(self._executors.items())}

    def hydrate_node_parameters(self, type_tag: str | None, stored: Any) -> dict[str, Any]:
        """Validated parameters for a stored node; ``{}`` for unknown types."""
        executor = self.find(type_tag)
        if executor is None:
            return {}
        return hydrate_parameters(executor.definition, stored)

    def __contains__(self, type_tag: object) -> bool:
        return type_tag in self._executors

    def __len__(self) -> int:
        return len(self._executors)


def default_registry() -> NodeRegistry:
    """A registry holding the built-in catalog."""
    from flows.nodes.builtin import register_builtin_nodes

    registry = NodeRegistry()
    register_builtin_nodes(registry)
    return registry
