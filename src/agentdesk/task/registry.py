"""Set of task ids whose execution has not settled yet."""

from __future__ import annotations

from typing import List, Set


class RunningTaskRegistry:
    def __init__(self) -> None:
        self._task_ids: Set[str] = set()

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._task_ids

    def __len__(self) -> int:
        return len(self._task_ids)

    def add(self, task_id: str) -> None:
        self._task_ids.add(task_id)

    def discard(self, task_id: str) -> None:
        self._task_ids.discard(task_id)

    def clear(self) -> None:
        self._task_ids.clear()

    def ids(self) -> List[str]:
        return sorted(self._task_ids)

    def has_running(self) -> bool:
        return bool(self._task_ids)
