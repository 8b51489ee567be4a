"""Task execution package."""

from .executor import TaskExecutor
from .registry import RunningTaskRegistry
from .types import EngineNotInitializedError, TaskRecord, TaskStatus

__all__ = [
    "EngineNotInitializedError",
    "RunningTaskRegistry",
    "TaskExecutor",
    "TaskRecord",
    "TaskStatus",
]
