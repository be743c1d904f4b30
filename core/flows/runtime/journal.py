"""
Step journal - per-run record of every step the runner begins and completes.

A step is begun (in progress, no result) and later completed exactly once
with a result and an opaque data payload. Completed steps are never
mutated. Step numbers grow monotonically within a run, including across
a resumed run.

Internal bookkeeping steps (loading the workflow, computing the order)
are journaled like any other step but filtered from visible_steps().
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from flows.errors import JournalError

if TYPE_CHECKING:
    from flows.runtime.journal_store import JournalStore

logger = logging.getLogger(__name__)


class StepResult(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"


class StepStatus(StrEnum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"
    PENDING = "pending"


def now_ms() -> int:
    """Epoch milliseconds."""
    return int(time.time() * 1000)


class JournalStep(BaseModel):
    """One recorded step of a run."""

    step_number: int
    name: str
    node_id: str | None = None
    in_progress: bool = False
    result: StepResult | None = None
    started_at: int | None = None  # epoch ms
    completed_at: int | None = None  # epoch ms
    data: Any = None
    internal: bool = False

    @property
    def status(self) -> StepStatus:
        if self.in_progress:
            return StepStatus.RUNNING
        if self.result is not None:
            return StepStatus(self.result.value)
        return StepStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return not self.in_progress and self.result is not None

    def to_status_dict(self) -> dict[str, Any]:
        """Wire shape consumed by status/UI collaborators."""
        return {
            "nodeId": self.node_id,
            "stepNumber": self.step_number,
            "name": self.name,
            "result": self.result.value if self.result else None,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "data": self.data,
            "status": self.status.value,
        }


class StepJournal:
    """
    In-memory journal for one run, optionally mirrored to a JournalStore.

    Every mutation is forwarded to the store as a full step snapshot, so the
    store can rebuild the journal after a crash (see from_store()).
    """

    def __init__(
        self,
        run_id: str,
        store: JournalStore | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.run_id = run_id
        self._store = store
        self._clock = clock
        self._steps: dict[int, JournalStep] = {}
        self._next_step_number = 1

    @classmethod
    def from_store(
        cls,
        run_id: str,
        store: JournalStore,
        clock: Callable[[], int] = now_ms,
    ) -> StepJournal:
        """
        Rebuild a run's journal to resume it.

        Steps left in progress by an interrupted run are closed as canceled.
        """
        journal = cls(run_id, store=store, clock=clock)
        for step in store.read_steps_sync(run_id):
            journal._steps[step.step_number] = step
            journal._next_step_number = max(journal._next_step_number, step.step_number + 1)

        for step in list(journal._steps.values()):
            if step.in_progress:
                logger.info("Closing interrupted step %d (%s)", step.step_number, step.name)
                journal.complete_step(
                    step.step_number, StepResult.CANCELED, {"reason": "interrupted"}
                )
        return journal

    def _persist(self, step: JournalStep) -> None:
        if self._store is not None:
            self._store.append_step(self.run_id, step)

    def begin_step(
        self,
        name: str,
        node_id: str | None = None,
        internal: bool = False,
    ) -> JournalStep:
        step = JournalStep(
            step_number=self._next_step_number,
            name=name,
            node_id=node_id,
            in_progress=True,
            started_at=self._clock(),
            internal=internal,
        )
        self._next_step_number += 1
        self._steps[step.step_number] = step
        self._persist(step)
        return step

    def complete_step(
        self,
        step_number: int,
        result: StepResult | str,
        data: Any = None,
    ) -> JournalStep:
        """
        Raises:
            JournalError: unknown step, or the step is already completed
        """
        step = self._steps.get(step_number)
        if step is None:
            raise JournalError(f"Step {step_number} does not exist in run {self.run_id}")
        if step.is_completed:
            raise JournalError(f"Step {step_number} of run {self.run_id} is already completed")

        completed = step.model_copy(
            update={
                "in_progress": False,
                "result": StepResult(result),
                "completed_at": self._clock(),
                "data": data,
            }
        )
        self._steps[step_number] = completed
        self._persist(completed)
        return completed

    def record_skipped(
        self,
        name: str,
        node_id: str | None = None,
        result: StepResult | str = StepResult.CANCELED,
        data: Any = None,
    ) -> JournalStep:
        """Journal a node that will not be started (canceled or stopped run)."""
        step = self.begin_step(name, node_id=node_id)
        return self.complete_step(step.step_number, result, data)

    def get_step(self, step_number: int) -> JournalStep | None:
        return self._steps.get(step_number)

    def steps(self) -> list[JournalStep]:
        return [self._steps[number] for number in sorted(self._steps)]

    def visible_steps(self) -> list[JournalStep]:
        return [step for step in self.steps() if not step.internal]

    def status_list(self) -> list[dict[str, Any]]:
        return [step.to_status_dict() for step in self.visible_steps()]

    def completed_successes(self) -> dict[str, Any]:
        """node_id -> output data of every node step that completed successfully."""
        return {
            step.node_id: step.data
            for step in self.steps()
            if step.node_id is not None and step.result == StepResult.SUCCESS
        }

    def __len__(self) -> int:
        return len(self._steps)
