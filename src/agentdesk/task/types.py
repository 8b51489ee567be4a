"""Task lifecycle primitives."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class TaskStatus(str, Enum):
    """Lifecycle states for one task invocation."""

    RUNNING = "running"
    DONE = "done"
    ABORTED = "aborted"
    ERRORED = "errored"


@dataclass
class TaskRecord:
    """Most recent invocation of a task id."""

    task_id: str
    status: TaskStatus = TaskStatus.RUNNING
    work_dir: Optional[Path] = None
    started_at_ms: int = 0
    finished_at_ms: int = 0
    abort_requested: bool = False
    error: str = ""

    @property
    def settled(self) -> bool:
        return self.status != TaskStatus.RUNNING


class EngineNotInitializedError(RuntimeError):
    """No engine instance is bound to the executor yet."""
