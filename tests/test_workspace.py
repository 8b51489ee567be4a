from __future__ import annotations

import pytest

from agentdesk.workspace import WorkspaceAllocator, WorkspaceError


def test_path_is_deterministic_and_pure(tmp_path):
    allocator = WorkspaceAllocator(tmp_path / "static")

    assert allocator.path_for("task_1") == tmp_path / "static" / "task_1"
    assert allocator.path_for("task_1") == allocator.path_for("task_1")
    assert not (tmp_path / "static").exists()


def test_allocate_creates_directory_and_is_idempotent(tmp_path):
    allocator = WorkspaceAllocator(tmp_path / "static")

    first = allocator.allocate("task_1")
    (first / "keep.txt").write_text("x", encoding="utf-8")
    second = allocator.allocate("task_1")

    assert first == second
    assert first.is_dir()
    assert (second / "keep.txt").read_text(encoding="utf-8") == "x"


@pytest.mark.parametrize("task_id", ["", "  ", "..", ".", "a/b", "..\\x"])
def test_invalid_task_ids_are_rejected(tmp_path, task_id):
    allocator = WorkspaceAllocator(tmp_path)
    with pytest.raises(WorkspaceError):
        allocator.path_for(task_id)
