"""File-based storage for step journals.

Each run gets its own directory under ``runs/``. Every journal mutation is
appended as one JSON line (a full snapshot of the step), so data is on disk
as soon as it is recorded. Loading folds the lines back into steps, the
last snapshot of a step number winning.

Storage layout::

    {base_path}/
      runs/
        {run_id}/
          journal.jsonl    # appended on every begin/complete
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from flows.runtime.journal import JournalStep

logger = logging.getLogger(__name__)

JOURNAL_FILE = "journal.jsonl"


class JournalStore(Protocol):
    """Where a StepJournal mirrors its steps."""

    def append_step(self, run_id: str, step: JournalStep) -> None: ...

    def read_steps_sync(self, run_id: str) -> list[JournalStep]: ...


class FileJournalStore:
    """Persists step journals as JSONL. Safe across runs via per-run directories."""

    def __init__(self, base_path: Path | str) -> None:
        self._base_path = Path(base_path)

    def _get_run_dir(self, run_id: str) -> Path:
        return self._base_path / "runs" / run_id

    # -------------------------------------------------------------------
    # Incremental write (sync, called by StepJournal)
    # -------------------------------------------------------------------

    def append_step(self, run_id: str, step: JournalStep) -> None:
        """Append one JSONL line to journal.jsonl. Sync."""
        run_dir = self._get_run_dir(run_id)
        run_dir.mkdir(parents=True, exist_ok=True)
        line = json.dumps(step.model_dump(), ensure_ascii=False, default=str) + "\n"
        with open(run_dir / JOURNAL_FILE, "a", encoding="utf-8") as f:
            f.write(line)

    # -------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------

    def read_steps_sync(self, run_id: str) -> list[JournalStep]:
        """Fold journal.jsonl into the latest snapshot per step. Skips corrupt lines."""
        path = self._get_run_dir(run_id) / JOURNAL_FILE
        latest: dict[int, JournalStep] = {}
        for step in _read_jsonl_steps(path):
            latest[step.step_number] = step
        return [latest[number] for number in sorted(latest)]

    async def load_steps(self, run_id: str) -> list[JournalStep]:
        return await asyncio.to_thread(self.read_steps_sync, run_id)

    async def list_runs(self) -> list[str]:
        """Run ids with a journal, most recently modified first."""

        def _scan() -> list[str]:
            runs_dir = self._base_path / "runs"
            if not runs_dir.exists():
                return []
            journals = [d / JOURNAL_FILE for d in runs_dir.iterdir() if d.is_dir()]
            journals = [p for p in journals if p.exists()]
            journals.sort(key=lambda p: p.stat().st_mtime, reverse=True)
            return [p.parent.name for p in journals]

        return await asyncio.to_thread(_scan)


# -------------------------------------------------------------------
# Module-level helpers
# -------------------------------------------------------------------


def _read_jsonl_steps(path: Path) -> list[JournalStep]:
    """Parse a JSONL file into JournalStep snapshots.

    Skips blank lines and corrupt lines (partial writes from crashes).
    """
    results: list[JournalStep] = []
    if not path.exists():
        return results
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    results.append(JournalStep.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.warning("Skipping corrupt JSONL line in %s: %s", path, e)
    except OSError as e:
        logger.warning("Failed to read %s: %s", path, e)
    return results
