"""Per-run execution log.

The ``ExecutionLogger`` keeps an append-only, in-memory list of
``StepLogEntry`` records for the current run together with its start
and end timestamps.  The orchestrator starts it when a run is accepted
and ends it when the run unwinds, whatever the outcome.

A finished run can be written to disk with ``save``::

    logs/run_YYYYMMDD_HHMMSS/
        steps.jsonl      # One StepLogEntry per line, in step order
        metadata.json    # Task, timestamps, duration and outcome

Typical usage::

    log = ExecutionLogger()
    log.start("Open WeChat")
    log.add_step(1, "launch", "Launch app: 微信", "...", True)
    log.end()
    run_dir = log.save(Path("logs"))
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from phone_pilot.models.task import StepLogEntry

logger = logging.getLogger(__name__)


class ExecutionLogger:
    """Thread-safe, append-only step log for one run.

    Timestamps are Unix seconds (``time.time()``); ``duration_ms`` is
    derived from them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._steps: list[StepLogEntry] = []
        self._task_description = ""
        self._start_timestamp = 0.0
        self._end_timestamp = 0.0
        self._status = ""
        self._final_message = ""

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def start(self, task_description: str = "") -> None:
        """Mark the start of a run and discard any previous steps."""
        with self._lock:
            self._steps = []
            self._task_description = task_description
            self._start_timestamp = time.time()
            self._end_timestamp = 0.0
            self._status = ""
            self._final_message = ""

    def end(self, status: str = "", final_message: str = "") -> None:
        """Mark the end of the run.

        Args:
            status: Outcome status value recorded in the metadata.
            final_message: Final outcome message.
        """
        with self._lock:
            self._end_timestamp = time.time()
            self._status = status
            self._final_message = final_message

    def add_step(
        self,
        step_number: int,
        action: str,
        action_description: str,
        thinking: str,
        success: bool,
        message: str | None = None,
    ) -> StepLogEntry:
        """Append one step record and return it."""
        entry = StepLogEntry(
            step_number=step_number,
            timestamp=time.time(),
            action=action,
            action_description=action_description,
            thinking=thinking,
            success=success,
            message=message,
        )
        with self._lock:
            self._steps.append(entry)
        return entry

    def reset(self) -> None:
        """Clear steps and timestamps."""
        with self._lock:
            self._steps = []
            self._task_description = ""
            self._start_timestamp = 0.0
            self._end_timestamp = 0.0
            self._status = ""
            self._final_message = ""

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_steps(self) -> list[StepLogEntry]:
        """Return a copy of the recorded steps, in step order."""
        with self._lock:
            return list(self._steps)

    @property
    def start_timestamp(self) -> float:
        return self._start_timestamp

    @property
    def end_timestamp(self) -> float:
        return self._end_timestamp

    @property
    def duration_ms(self) -> float:
        """Run duration in milliseconds, or 0.0 before ``end``."""
        if not self._start_timestamp or not self._end_timestamp:
            return 0.0
        return (self._end_timestamp - self._start_timestamp) * 1000.0

    def metadata(self) -> dict[str, Any]:
        """Summary of the run as a JSON-serialisable dict."""
        with self._lock:
            return {
                "task_description": self._task_description,
                "start_time": self._start_timestamp,
                "end_time": self._end_timestamp,
                "duration_ms": self.duration_ms,
                "step_count": len(self._steps),
                "status": self._status,
                "final_message": self._final_message,
            }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, directory: Path, run_id: str = "") -> Path:
        """Write the log to a new run directory under *directory*.

        Args:
            directory: Parent directory; created if missing.
            run_id: Name of the run directory.  When empty, one is
                generated from the start time in the format
                ``run_YYYYMMDD_HHMMSS``.  An existing directory is never
                reused; ``_1``, ``_2``, ... is appended instead.

        Returns:
            Path to the run directory.
        """
        if not run_id:
            started = datetime.fromtimestamp(
                self._start_timestamp or time.time(), tz=timezone.utc,
            )
            run_id = started.strftime("run_%Y%m%d_%H%M%S")

        run_dir = _create_run_dir(Path(directory), run_id)

        # -- Steps -----------------------------------------------------------
        steps_path = run_dir / "steps.jsonl"
        with steps_path.open("w", encoding="utf-8") as fh:
            for entry in self.get_steps():
                fh.write(json.dumps(asdict(entry), ensure_ascii=False) + "\n")

        # -- Metadata --------------------------------------------------------
        meta_path = run_dir / "metadata.json"
        with meta_path.open("w", encoding="utf-8") as fh:
            json.dump(self.metadata(), fh, indent=2, ensure_ascii=False)
            fh.write("\n")

        logger.info("Execution log saved to %s", run_dir)
        return run_dir

    @staticmethod
    def load_steps(run_dir: Path) -> list[StepLogEntry]:
        """Read ``steps.jsonl`` back from a saved run directory.

        Raises:
            FileNotFoundError: If *run_dir* has no ``steps.jsonl``.
        """
        steps_path = Path(run_dir) / "steps.jsonl"
        if not steps_path.exists():
            raise FileNotFoundError(f"No steps.jsonl found in {run_dir}")
        with steps_path.open("r", encoding="utf-8") as fh:
            return [StepLogEntry(**json.loads(line)) for line in fh if line.strip()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._steps)


def _create_run_dir(directory: Path, run_id: str) -> Path:
    """Create and return a fresh directory ``directory / run_id``.

    Falls back to ``run_id_1``, ``run_id_2``, ... when the name is
    taken, so two runs saved within the same second never share files.
    """
    directory.mkdir(parents=True, exist_ok=True)
    suffix = 0
    while True:
        name = run_id if suffix == 0 else f"{run_id}_{suffix}"
        run_dir = directory / name
        try:
            run_dir.mkdir()
        except FileExistsError:
            suffix += 1
            continue
        return run_dir
