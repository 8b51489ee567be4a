"""Per-task workspace directory allocation."""

from __future__ import annotations

from pathlib import Path


class WorkspaceError(RuntimeError):
    """Raised when a task id cannot be mapped to a workspace directory."""


class WorkspaceAllocator:
    """Derives one deterministic directory per task id under a base dir.

    Directories are created on first use and never removed here; retention
    belongs to whoever owns the base directory.
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    def path_for(self, task_id: str) -> Path:
        normalized = str(task_id or "").strip()
        if not normalized:
            raise WorkspaceError("task id is required")
        if normalized in {".", ".."} or "/" in normalized or "\\" in normalized:
            raise WorkspaceError("invalid task id for workspace: {0}".format(normalized))
        return self.base_dir / normalized

    def allocate(self, task_id: str) -> Path:
        path = self.path_for(task_id)
        path.mkdir(parents=True, exist_ok=True)
        return path
