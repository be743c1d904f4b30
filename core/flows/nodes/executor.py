"""
Node Executor - runs one node's handler against validated values.

create_node_executor() binds a definition to a handler. Calling the
executor:

1. validates parameters (defaults applied) and inputs
2. invokes the handler with a NodeExecutionContext whose ``emit`` validates
   each value against the output port before recording it
3. returns the emitted outputs (ports that were never emitted are absent)

Run state (NodeRunState) belongs to a NodeExecution, one per invocation.

There is no retry here; the runner owns the retry policy.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from flows.nodes.definition import (
    NodeDefinition,
    validate_inputs,
    validate_output,
    validate_parameters,
)

logger = logging.getLogger(__name__)


class NodeRunState(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass
class NodeExecution:
    """State of one invocation; executors themselves hold no run state."""

    state: NodeRunState = NodeRunState.PENDING
    outputs: dict[str, Any] = field(default_factory=dict)
    error: BaseException | None = None


@dataclass
class NodeExecutionContext:
    """What a handler sees: the run context, validated values and emit()."""

    ctx: Any
    definition: NodeDefinition
    parameters: dict[str, Any]
    inputs: dict[str, Any]
    outputs: dict[str, Any] = field(default_factory=dict)

    def emit(self, port_id: str, value: Any) -> None:
        """Validate ``value`` against output port ``port_id`` and record it."""
        self.outputs[port_id] = validate_output(self.definition, port_id, value)


NodeHandler = Callable[[NodeExecutionContext], Awaitable[None] | None]


class NodeExecutor:
    """A node definition bound to its handler."""

    def __init__(self, definition: NodeDefinition, handler: NodeHandler):
        self.definition = definition
        self._handler = handler

    @property
    def retryable(self) -> bool:
        return self.definition.retryable

    async def __call__(
        self,
        ctx: Any = None,
        parameters: dict[str, Any] | None = None,
        inputs: dict[str, Any] | None = None,
        execution: NodeExecution | None = None,
    ) -> dict[str, Any]:
        """
        Execute the handler once.

        Pass ``execution`` to observe this invocation's state; each call
        tracks its own, so concurrent runs sharing an executor do not collide.

        Raises:
            NodeValidationError: parameters, inputs or an emitted value are invalid
            UnknownPortError: the handler emitted on an undeclared port
            Exception: whatever the handler raises, unchanged
        """
        if execution is None:
            execution = NodeExecution()
        execution.state = NodeRunState.RUNNING
        try:
            context = NodeExecutionContext(
                ctx=ctx,
                definition=self.definition,
                parameters=validate_parameters(self.definition, parameters),
                inputs=validate_inputs(self.definition, inputs),
            )
            result = self._handler(context)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            execution.state = NodeRunState.CANCELED
            raise
        except Exception as e:
            execution.state = NodeRunState.FAILED
            execution.error = e
            raise

        execution.outputs = dict(context.outputs)
        execution.state = NodeRunState.SUCCESS
        return dict(execution.outputs)


def create_node_executor(definition: NodeDefinition, handler: NodeHandler) -> NodeExecutor:
    return NodeExecutor(definition, handler)
