"""
Workflow Runner - drives one run of a workflow snapshot step by step.

The runner:
1. Validates the snapshot and computes the execution order
2. Walks the order one node at a time, awaiting each step
3. Threads a shared context forward (trigger payload, outputs per node)
4. Follows only the taken leg of each branch node
5. Retries retryable nodes with exponential backoff
6. Journals every step and publishes run/step events

Structural errors (invalid snapshot, cycle) fail the run before any node
step starts. Node failures are recorded on their step; with
``stop_on_failure`` the remaining nodes are recorded as canceled.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from flows.config import RuntimeConfig
from flows.errors import (
    ActionError,
    GraphStructureError,
    UnknownPortError,
    UnregisteredNodeTypeError,
)
from flows.graph.branching import BRANCH_KEYS, is_branch_node_type
from flows.graph.model import Graph, GraphSnapshot, NodeSnapshot, build_graph
from flows.graph.traversal import compute_execution_order
from flows.nodes.builtin.switch import ROUTE_TO_BRANCH_KEY
from flows.nodes.executor import NodeExecutor
from flows.nodes.ports import PortMultiplicity
from flows.nodes.registry import NodeRegistry, default_registry
from flows.observability import clear_trace_context, set_trace_context
from flows.runtime.event_bus import EventBus, RunEventType
from flows.runtime.journal import StepJournal, StepResult
from flows.runtime.journal_store import FileJournalStore

logger = logging.getLogger(__name__)

LOAD_WORKFLOW_STEP = "load-workflow"
COMPUTE_ORDER_STEP = "compute-execution-order"

Sleep = Callable[[float], Awaitable[Any]]


class RunStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"


class CancellationToken:
    """Marks a run canceled; the runner checks it before starting each step."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_canceled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class RunContext:
    """
    Passed to every executor as ``ctx``.

    ``context`` accumulates across steps::

        {"trigger": {...}, "steps": {node_id: outputs}, "previous": outputs}
    """

    run_id: str
    workflow_id: str | None
    trigger: dict[str, Any]
    config: RuntimeConfig
    http: httpx.AsyncClient | None = None
    sleep: Sleep = asyncio.sleep
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.context.setdefault("trigger", self.trigger)
        self.context.setdefault("steps", {})
        self.context.setdefault("previous", None)

    def record_outputs(self, node_id: str, outputs: dict[str, Any]) -> None:
        self.context["steps"][node_id] = outputs
        self.context["previous"] = outputs


class RunResult(BaseModel):
    """Outcome of one run."""

    run_id: str
    workflow_id: str | None = None
    status: RunStatus
    order: list[str] = Field(default_factory=list)
    outputs: dict[str, Any] = Field(default_factory=dict)
    failed_nodes: list[str] = Field(default_factory=list)
    skipped_nodes: list[str] = Field(default_factory=list)
    steps: list[dict[str, Any]] = Field(default_factory=list)
    error: str | None = None


def new_run_id() -> str:
    timestamp = datetime.now().strftime("%Y%m%dT%H%M%S")
    return f"{timestamp}_{uuid.uuid4().hex[:8]}"


def taken_leg(outputs: dict[str, Any] | None) -> str | None:
    """Branch leg ("if"/"else") chosen by a branch node's outputs."""
    if not outputs:
        return None
    route = outputs.get("route")
    if route in ROUTE_TO_BRANCH_KEY:
        return ROUTE_TO_BRANCH_KEY[route]
    branch = outputs.get("branch")
    return branch if branch in BRANCH_KEYS else None


def _is_retryable_error(error: Exception) -> bool:
    if isinstance(error, ActionError):
        return error.retryable
    return isinstance(error, httpx.TransportError | TimeoutError)


def _error_payload(error: Exception, attempts: int) -> dict[str, Any]:
    return {"error": str(error), "type": type(error).__name__, "attempts": attempts}


def _peek_workflow_id(snapshot: Any) -> str | None:
    """Workflow id for the trace context, read before the snapshot is validated."""
    if isinstance(snapshot, GraphSnapshot):
        return snapshot.workflow_id
    if isinstance(snapshot, Mapping):
        return snapshot.get("workflowId") or snapshot.get("workflow_id")
    return None


@dataclass
class _RunState:
    """Mutable bookkeeping for one run."""

    run: RunContext
    journal: StepJournal
    graph: Graph
    nodes: dict[str, NodeSnapshot]
    legs: dict[str, str | None] = field(default_factory=dict)  # branch node -> taken leg
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    fatal: Exception | None = None


class WorkflowRunner:
    """
    Executes workflow snapshots against a node registry.

    Example:
        runner = WorkflowRunner(default_registry())
        result = await runner.run(snapshot, trigger={"status": "ok"})
    """

    def __init__(
        self,
        registry: NodeRegistry | None = None,
        config: RuntimeConfig | None = None,
        event_bus: EventBus | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.registry = registry or default_registry()
        self.config = config or RuntimeConfig()
        self.event_bus = event_bus or EventBus()
        self._http_client = http_client
        self._sleep = sleep

    def _new_journal(self, run_id: str) -> StepJournal:
        store = FileJournalStore(self.config.journal_dir) if self.config.journal_dir else None
        return StepJournal(run_id, store=store)

    async def run(
        self,
        snapshot: GraphSnapshot | dict[str, Any],
        trigger: dict[str, Any] | None = None,
        cancel: CancellationToken | None = None,
        journal: StepJournal | None = None,
        run_id: str | None = None,
    ) -> RunResult:
        """
        Run a workflow snapshot to completion, failure or cancellation.

        Passing the journal of an earlier, interrupted run resumes it: nodes
        that already completed successfully are not executed again.
        """
        run_id = run_id or (journal.run_id if journal else new_run_id())
        journal = journal or self._new_journal(run_id)
        cancel = cancel or CancellationToken()
        workflow_id = _peek_workflow_id(snapshot)

        set_trace_context(run_id=run_id, workflow_id=workflow_id)
        owns_client = self._http_client is None
        client = self._http_client or httpx.AsyncClient()
        try:
            await self.event_bus.emit(RunEventType.RUN_STARTED, run_id, workflow_id)
            return await self._run(snapshot, trigger or {}, cancel, journal, run_id, client)
        finally:
            if owns_client:
                await client.aclose()
            clear_trace_context()

    async def _run(
        self,
        raw_snapshot: GraphSnapshot | dict[str, Any],
        trigger: dict[str, Any],
        cancel: CancellationToken,
        journal: StepJournal,
        run_id: str,
        client: httpx.AsyncClient,
    ) -> RunResult:
        # Load
        step = journal.begin_step(LOAD_WORKFLOW_STEP, internal=True)
        try:
            snapshot = (
                raw_snapshot
                if isinstance(raw_snapshot, GraphSnapshot)
                else GraphSnapshot.model_validate(raw_snapshot)
            )
        except ValidationError as e:
            journal.complete_step(step.step_number, StepResult.FAILED, _error_payload(e, 1))
            return await self._abort(run_id, None, journal, f"Invalid workflow snapshot: {e}")
        journal.complete_step(
            step.step_number,
            StepResult.SUCCESS,
            {"nodes": len(snapshot.nodes), "edges": len(snapshot.edges)},
        )
        workflow_id = snapshot.workflow_id

        # Order
        step = journal.begin_step(COMPUTE_ORDER_STEP, internal=True)
        try:
            graph = build_graph(snapshot)
            involved = graph.connected_nodes()
            order = [
                key
                for key in compute_execution_order(graph, self.config.traversal)
                if key in involved
            ]
        except (GraphStructureError, ValueError) as e:
            journal.complete_step(step.step_number, StepResult.FAILED, _error_payload(e, 1))
            return await self._abort(run_id, workflow_id, journal, str(e))
        journal.complete_step(step.step_number, StepResult.SUCCESS, {"order": order})
        logger.info("Execution order: %s", " -> ".join(order) or "(empty)")

        run = RunContext(
            run_id=run_id,
            workflow_id=workflow_id,
            trigger=trigger,
            config=self.config,
            http=client,
            sleep=self._sleep,
        )
        state = _RunState(run=run, journal=journal, graph=graph, nodes=snapshot.node_index())
        resumed = journal.completed_successes()
        status = RunStatus.SUCCESS

        for index, node_id in enumerate(order):
            if cancel.is_canceled:
                logger.info("Run canceled before %s", node_id)
                self._record_remaining(state, order[index:], "canceled")
                status = RunStatus.CANCELED
                break

            node = state.nodes.get(node_id)
            if node_id in resumed:
                outputs = resumed[node_id] or {}
                logger.info("Resuming: %s already completed", node_id)
                self._accept_outputs(state, node, outputs)
                continue

            reason = self._skip_reason(state, node)
            if reason:
                logger.info("Skipping %s: %s", node_id, reason)
                state.skipped.append(node_id)
                await self.event_bus.emit(
                    RunEventType.STEP_SKIPPED, run_id, workflow_id, node_id, reason=reason
                )
                continue

            succeeded = await self._execute_node(state, node)
            if state.fatal is not None:
                self._record_remaining(state, order[index + 1 :], "aborted after fatal error")
                break
            if not succeeded and self.config.stop_on_failure:
                self._record_remaining(state, order[index + 1 :], "stopped after failure")
                break

        if status == RunStatus.SUCCESS and state.failed:
            status = RunStatus.FAILED

        result = RunResult(
            run_id=run_id,
            workflow_id=workflow_id,
            status=status,
            order=order,
            outputs=dict(run.context["steps"]),
            failed_nodes=state.failed,
            skipped_nodes=state.skipped,
            steps=journal.status_list(),
            error=_run_error(state),
        )
        event = {
            RunStatus.SUCCESS: RunEventType.RUN_COMPLETED,
            RunStatus.FAILED: RunEventType.RUN_FAILED,
            RunStatus.CANCELED: RunEventType.RUN_CANCELED,
        }[status]
        await self.event_bus.emit(event, run_id, workflow_id, status=status.value)
        logger.info("Run finished: %s", status.value)
        return result

    async def _abort(
        self,
        run_id: str,
        workflow_id: str | None,
        journal: StepJournal,
        error: str,
    ) -> RunResult:
        logger.error("Run aborted: %s", error)
        await self.event_bus.emit(RunEventType.RUN_FAILED, run_id, workflow_id, error=error)
        return RunResult(
            run_id=run_id,
            workflow_id=workflow_id,
            status=RunStatus.FAILED,
            steps=journal.status_list(),
            error=error,
        )

    # === STEP HANDLING ===

    def _skip_reason(self, state: _RunState, node: NodeSnapshot | None) -> str | None:
        """Why a node must not run: it sits on a leg its branch node did not take."""
        if node is None or not node.branch_scope_id:
            return None
        scope = node.branch_scope_id
        if scope not in state.legs:
            return f"branch {scope} did not run"
        leg = state.legs[scope]
        if node.branch_key and node.branch_key != leg:
            return f"branch {scope} took the {leg!r} leg"
        return None

    def _accept_outputs(
        self, state: _RunState, node: NodeSnapshot | None, outputs: dict[str, Any]
    ) -> None:
        if node is None:
            return
        state.run.record_outputs(node.key, outputs)
        if is_branch_node_type(node.type):
            state.legs[node.key] = taken_leg(outputs)

    def _inputs_for(self, state: _RunState, node: NodeSnapshot, executor: NodeExecutor) -> dict:
        """
        Declared input ports filled from the outputs of direct predecessors.

        A "many" port collects every predecessor's value, in edge order; a
        single port takes the value of the last predecessor that emitted it.
        """
        declared = executor.definition.ports.inputs
        if not declared:
            return {}
        inputs: dict[str, Any] = {}
        for parent in state.graph.in_neighbors(node.key):
            outputs = state.run.context["steps"].get(parent) or {}
            for key, value in outputs.items():
                port = declared.get(key)
                if port is None:
                    continue
                if port.multiplicity == PortMultiplicity.MANY:
                    collected = inputs.setdefault(key, [])
                    collected.extend(value if isinstance(value, list) else [value])
                else:
                    inputs[key] = value
        return inputs

    def _record_remaining(self, state: _RunState, node_ids: list[str], reason: str) -> None:
        for node_id in node_ids:
            node = state.nodes.get(node_id)
            state.journal.record_skipped(
                _step_name(node, node_id), node_id, StepResult.CANCELED, {"reason": reason}
            )

    async def _execute_node(self, state: _RunState, node: NodeSnapshot) -> bool:
        run, journal = state.run, state.journal
        node_id = node.key
        set_trace_context(node_id=node_id)
        step = journal.begin_step(_step_name(node, node_id), node_id=node_id)
        await self.event_bus.emit(
            RunEventType.STEP_STARTED, run.run_id, run.workflow_id, node_id, step.step_number
        )

        try:
            executor = self.registry.get(node.type)
        except UnregisteredNodeTypeError as e:
            return await self._fail_step(state, node_id, step.step_number, e, attempts=0)

        inputs = self._inputs_for(state, node, executor)
        max_attempts = self.config.max_attempts if executor.retryable else 1
        attempt = 0
        while True:
            attempt += 1
            started = time.monotonic()
            try:
                outputs = await executor(ctx=run, parameters=node.parameters, inputs=inputs)
            except asyncio.CancelledError:
                journal.complete_step(
                    step.step_number, StepResult.CANCELED, {"reason": "interrupted"}
                )
                raise
            except Exception as e:
                if attempt < max_attempts and _is_retryable_error(e):
                    delay = self.config.backoff_for(attempt)
                    logger.warning(
                        "Step %s failed (%s), retrying in %ss (%d/%d)",
                        node_id,
                        e,
                        delay,
                        attempt,
                        max_attempts,
                        extra={"attempt": attempt, "step_number": step.step_number},
                    )
                    await self.event_bus.emit(
                        RunEventType.STEP_RETRY,
                        run.run_id,
                        run.workflow_id,
                        node_id,
                        step.step_number,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        error=str(e),
                    )
                    await self._sleep(delay)
                    continue
                if isinstance(e, UnknownPortError):
                    state.fatal = e
                return await self._fail_step(state, node_id, step.step_number, e, attempt)
            break

        latency_ms = int((time.monotonic() - started) * 1000)
        journal.complete_step(step.step_number, StepResult.SUCCESS, outputs)
        self._accept_outputs(state, node, outputs)
        logger.info(
            "Step %s succeeded",
            node_id,
            extra={
                "step_number": step.step_number,
                "attempt": attempt,
                "latency_ms": latency_ms,
                "node_type": node.type,
            },
        )
        await self.event_bus.emit(
            RunEventType.STEP_COMPLETED,
            run.run_id,
            run.workflow_id,
            node_id,
            step.step_number,
            outputs=outputs,
            attempts=attempt,
        )
        return True

    async def _fail_step(
        self,
        state: _RunState,
        node_id: str,
        step_number: int,
        error: Exception,
        attempts: int,
    ) -> bool:
        payload = _error_payload(error, attempts)
        state.journal.complete_step(step_number, StepResult.FAILED, payload)
        state.failed.append(node_id)
        logger.error(
            "Step %s failed: %s",
            node_id,
            error,
            extra={"step_number": step_number, "attempt": attempts},
        )
        await self.event_bus.emit(
            RunEventType.STEP_FAILED,
            state.run.run_id,
            state.run.workflow_id,
            node_id,
            step_number,
            **payload,
        )
        return False


def _step_name(node: NodeSnapshot | None, node_id: str) -> str:
    if node is None:
        return node_id
    return node.name or node.type or node_id


def _run_error(state: _RunState) -> str | None:
    if state.fatal is not None:
        return f"Run aborted: {state.fatal}"
    if state.failed:
        return f"{len(state.failed)} node(s) failed"
    return None
