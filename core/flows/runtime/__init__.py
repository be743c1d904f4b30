"""Runtime - step journal, run events and the workflow runner."""

from flows.runtime.event_bus import EventBus, RunEvent, RunEventType
from flows.runtime.journal import JournalStep, StepJournal, StepResult, StepStatus
from flows.runtime.journal_store import FileJournalStore, JournalStore
from flows.runtime.runner import (
    CancellationToken,
    RunContext,
    RunResult,
    RunStatus,
    WorkflowRunner,
)

__all__ = [
    # Journal
    "JournalStep",
    "StepJournal",
    "StepResult",
    "StepStatus",
    "JournalStore",
    "FileJournalStore",
    # Events
    "EventBus",
    "RunEvent",
    "RunEventType",
    # Runner
    "CancellationToken",
    "RunContext",
    "RunResult",
    "RunStatus",
    "WorkflowRunner",
]
