from __future__ import annotations

import asyncio

import pytest

from agentdesk.engine.types import STOP_REASON_ABORT
from agentdesk.interaction.types import InteractionAbortedError
from agentdesk.service.context import build_context
import agentdesk.task.executor as executor_module
from agentdesk.task.types import TaskStatus

from fakes import FailingEngine, FakeSurface, ScriptedEngine, build_with, wait_for


def _context(settings, engines, surface=None, **kwargs):
    sink_events = []
    engine_kwargs = kwargs.pop("engine_kwargs", {})
    engine_cls = kwargs.pop("engine_cls", ScriptedEngine)
    context = build_context(
        settings,
        surface or FakeSurface(),
        engine_builder=build_with(engines, engine_cls, **engine_kwargs),
        event_sink=lambda et, payload: sink_events.append((et, payload)),
        **kwargs,
    )
    return context, sink_events


def test_tool_id_response_resolves_confirm(settings):
    engines = []
    surface = FakeSurface()
    context, sink_events = _context(settings, engines, surface)
    executor = context.executor
    broker = context.broker

    async def _run():
        task = asyncio.ensure_future(executor.run("X"))
        await wait_for(broker.has_pending)
        assert executor.has_running_task() is True
        request_id = surface.of_type("human_interaction")[0]["requestId"]
        assert broker.correlation.request_for("abc") == request_id
        assert broker.handle_human_response({"requestId": "abc", "success": True, "result": True}) is True
        return await task

    result = asyncio.run(_run())

    assert result.success is True
    assert result.result == "True"
    assert broker.pending_count() == 0
    assert len(broker.correlation) == 0
    assert executor.has_running_task() is False
    assert executor.record_for(result.task_id).status == TaskStatus.DONE
    assert (settings.workspace_base_dir / result.task_id).is_dir()
    names = [name for name, _ in sink_events]
    assert "task.started" in names
    assert "task.settled" in names


def test_abort_before_response_rejects_and_late_response_is_noop(settings):
    engines = []
    context, _ = _context(settings, engines)
    executor = context.executor
    broker = context.broker

    async def _run():
        task = asyncio.ensure_future(executor.run("X"))
        await wait_for(broker.has_pending)
        task_id = executor.running_task_ids()[0]
        accepted = await executor.abort_task(task_id, "cancel")
        result = await task
        late = broker.handle_human_response({"requestId": "abc", "success": True, "result": True})
        again = await executor.abort_task(task_id, "cancel")
        return task_id, accepted, result, late, again

    task_id, accepted, result, late, again = asyncio.run(_run())

    assert accepted is True
    assert result.stop_reason == STOP_REASON_ABORT
    assert isinstance(engines[-1].errors[0], InteractionAbortedError)
    assert late is False
    assert again is False
    assert executor.record_for(task_id).status == TaskStatus.ABORTED
    assert executor.has_running_task() is False


def test_back_to_back_runs_supersede_engine_binding(settings):
    engines = []
    context, _ = _context(settings, engines)
    executor = context.executor
    broker = context.broker

    async def _run():
        first = asyncio.ensure_future(executor.run("one"))
        await wait_for(lambda: broker.pending_count() == 1)
        second = asyncio.ensure_future(executor.run("two"))
        await wait_for(lambda: broker.pending_count() == 2)

        first_engine, second_engine = engines[-2], engines[-1]
        first_id = first_engine.get_all_task_ids()[0]
        second_id = second_engine.get_all_task_ids()[0]
        assert executor.engine is second_engine
        assert sorted(executor.running_task_ids()) == sorted([first_id, second_id])

        # The superseded engine still receives aborts for its own task.
        assert await executor.abort_task(first_id, "cancel") is True
        first_result = await first
        assert first_engine.aborts == [(first_id, "cancel")]
        assert executor.running_task_ids() == [second_id]

        remaining = broker.snapshot()[0]
        broker.handle_human_response({"requestId": remaining.request_id, "success": True, "result": True})
        second_result = await second
        return first_result, second_result

    first_result, second_result = asyncio.run(_run())

    assert first_result.stop_reason == STOP_REASON_ABORT
    assert second_result.success is True
    assert executor.has_running_task() is False


def test_abort_all_leaves_nothing_pending_or_running(settings):
    engines = []
    context, _ = _context(settings, engines)
    executor = context.executor
    broker = context.broker

    async def _run():
        tasks = [asyncio.ensure_future(executor.run(name)) for name in ("a", "b", "c")]
        await wait_for(lambda: broker.pending_count() == 3)
        await executor.abort_all_tasks()
        assert broker.pending_count() == 0
        assert executor.has_running_task() is False
        return await asyncio.gather(*tasks)

    results = asyncio.run(_run())

    assert [result.stop_reason for result in results] == [STOP_REASON_ABORT] * 3
    assert len(context.broker.correlation) == 0


def test_abort_all_deregisters_tasks_that_ignore_abort(settings):
    engines = []
    context, _ = _context(settings, engines, engine_kwargs={"stubborn": True}, settle_timeout=0.05)
    executor = context.executor

    async def _run():
        task = asyncio.ensure_future(executor.run("stuck"))
        await wait_for(executor.has_running_task)
        await executor.abort_all_tasks()
        running_after = executor.has_running_task()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return running_after

    assert asyncio.run(_run()) is False


def test_abort_all_with_nothing_running_is_safe(settings):
    context, _ = _context(settings, [])

    asyncio.run(context.executor.abort_all_tasks())

    assert context.executor.has_running_task() is False


def test_reload_with_zero_tasks_notifies_effective_model(settings):
    engines = []
    surface = FakeSurface()
    context, _ = _context(settings, engines, surface)

    async def _run():
        first = await context.executor.reload_config()
        second = await context.executor.reload_config()
        return first, second

    first, second = asyncio.run(_run())

    assert (first, second) == (True, True)
    reloaded = surface.of_type("config_reloaded")
    assert len(reloaded) == 2
    assert reloaded[-1]["model"] == "echo-1"
    assert reloaded[-1]["provider"] == "echo"
    assert context.executor.engine is engines[-1]
    assert context.factory.generation == 3


def test_reload_rejects_pending_interaction_then_new_run_succeeds(settings):
    engines = []
    surface = FakeSurface()
    context, _ = _context(settings, engines, surface)
    executor = context.executor
    broker = context.broker

    async def _run():
        stale = asyncio.ensure_future(executor.run("before"))
        await wait_for(broker.has_pending)
        stale_engine = engines[-1]
        await executor.reload_config()
        await stale

        fresh = asyncio.ensure_future(executor.run("after"))
        await wait_for(broker.has_pending)
        broker.handle_human_response({"requestId": "abc", "success": True, "result": True})
        return stale_engine, await fresh

    stale_engine, fresh_result = asyncio.run(_run())

    assert str(stale_engine.errors[0]) == "Engine configuration reloaded"
    assert stale_engine.aborts[0][1] == "config-reload"
    assert fresh_result.success is True
    assert executor.has_running_task() is False


def test_run_failure_when_engine_cannot_be_built(settings):
    surface = FakeSurface()
    context, _ = _context(settings, [], surface)

    def _broken(spec):
        raise RuntimeError("no engine today")

    context.factory._builder = _broken

    result = asyncio.run(context.executor.run("X"))

    assert result is None
    errors = surface.of_type("error")
    assert errors[-1]["error"] == "no engine today"
    assert "RuntimeError" in errors[-1]["detail"]
    assert context.executor.has_running_task() is False


def test_execution_exception_becomes_error_event(settings):
    engines = []
    surface = FakeSurface()
    context, sink_events = _context(settings, engines, surface, engine_cls=FailingEngine)

    result = asyncio.run(context.executor.run("X"))

    assert result is None
    error = surface.of_type("error")[-1]
    assert error["error"] == "engine exploded"
    assert error["taskId"].startswith("task_")
    assert "Traceback" in error["detail"]
    assert context.executor.record_for(error["taskId"]).status == TaskStatus.ERRORED
    assert context.executor.has_running_task() is False
    settled = [payload for name, payload in sink_events if name == "task.settled"]
    assert settled[-1]["status"] == "errored"


def test_modify_and_execute_without_engine_fail_fast(settings):
    surface = FakeSurface()
    context, _ = _context(settings, [], surface)
    context.executor.destroy()

    async def _run():
        return await context.executor.modify("task_1", "x"), await context.executor.execute("task_1")

    modified, executed = asyncio.run(_run())

    assert modified is None
    assert executed is None
    assert [event["error"] for event in surface.of_type("error")] == ["Engine not initialized"] * 2
    assert context.executor.has_running_task() is False


def test_modify_reexecutes_existing_task(settings):
    engines = []
    surface = FakeSurface()
    context, _ = _context(settings, engines, surface)
    executor = context.executor
    broker = context.broker

    async def _run():
        task = asyncio.ensure_future(executor.run("one"))
        await wait_for(broker.has_pending)
        task_id = executor.running_task_ids()[0]
        broker.handle_human_response({"requestId": "abc", "success": True, "result": False})
        await task

        modified = asyncio.ensure_future(executor.modify(task_id, "two"))
        await wait_for(broker.has_pending)
        assert executor.running_task_ids() == [task_id]
        broker.handle_human_response({"requestId": "abc", "success": True, "result": True})
        return await modified

    result = asyncio.run(_run())

    assert result.success is True
    prompts = [event["prompt"] for event in surface.of_type("human_interaction")]
    assert prompts == ["do one?", "do two?"]


def test_restore_task_and_get_task_context(settings):
    engines = []
    context, _ = _context(settings, engines)
    executor = context.executor

    async def _run():
        return await executor.restore_task(
            {"taskId": "task_restored", "name": "saved"},
            {"city": "Paris"},
            {"messages": ["plan"]},
            "plan-xml",
        )

    task_id = asyncio.run(_run())

    assert task_id == "task_restored"
    assert executor.engine is engines[-1]
    assert (settings.workspace_base_dir / "task_restored").is_dir()
    assert executor.get_task_context("task_restored") == {
        "workflow": {"taskId": "task_restored", "name": "saved"},
        "contextParams": {"city": "Paris"},
        "planRequest": {"messages": ["plan"]},
        "planResult": "plan-xml",
    }
    assert executor.get_task_context("missing") is None


def test_restore_task_failure_returns_none(settings):
    surface = FakeSurface()
    context, _ = _context(settings, [], surface)

    async def _run():
        return await context.executor.restore_task({"name": "no id"}), await context.executor.restore_task(
            {"taskId": "../escape"}
        )

    assert asyncio.run(_run()) == (None, None)
    assert len(surface.of_type("error")) == 2


def test_cancel_task_reports_success_and_missing_tasks(settings):
    engines = []
    context, _ = _context(settings, engines)
    executor = context.executor
    broker = context.broker

    async def _run():
        missing = await executor.cancel_task("task_missing")
        task = asyncio.ensure_future(executor.run("X"))
        await wait_for(broker.has_pending)
        cancelled = await executor.cancel_task(executor.running_task_ids()[0])
        await task
        return missing, cancelled

    missing, cancelled = asyncio.run(_run())

    assert missing == {"success": False, "error": "Task is not running"}
    assert cancelled == {"success": True}
    assert engines[-1].aborts[0][1] == "cancel"


def test_destroy_rejects_pending_interactions(settings):
    engines = []
    context, _ = _context(settings, engines)
    executor = context.executor

    async def _run():
        task = asyncio.ensure_future(executor.run("X"))
        await wait_for(context.broker.has_pending)
        executor.destroy()
        return await task

    result = asyncio.run(_run())

    assert result.success is False
    assert str(engines[-1].errors[0]) == "Task executor destroyed"
    assert executor.engine is None


@pytest.mark.parametrize("reason", ["cancel", "window-closing"])
def test_abort_reason_reaches_engine(settings, reason):
    engines = []
    context, _ = _context(settings, engines)

    async def _run():
        task = asyncio.ensure_future(context.executor.run("X"))
        await wait_for(context.broker.has_pending)
        await context.executor.abort_task(context.executor.running_task_ids()[0], reason)
        await task

    asyncio.run(_run())

    assert engines[-1].aborts == [(engines[-1].get_all_task_ids()[0], reason)]


def _answer_next(context):
    async def _run(message):
        task = asyncio.ensure_future(context.executor.run(message))
        await wait_for(context.broker.has_pending)
        context.broker.handle_human_response({"requestId": "abc", "success": True, "result": True})
        return await task

    return _run


def test_abort_all_skips_engines_of_settled_superseded_tasks(settings):
    engines = []
    context, _ = _context(settings, engines)
    run = _answer_next(context)

    async def _run():
        await run("first")
        await run("second")
        await context.executor.abort_all_tasks()

    asyncio.run(_run())

    first_engine, second_engine = engines[-2], engines[-1]
    assert first_engine.aborts == []
    assert [reason for _, reason in second_engine.aborts] == ["abort-all"]


def test_settled_task_history_is_bounded(settings, monkeypatch):
    monkeypatch.setattr(executor_module, "MAX_REMEMBERED_TASKS", 2)
    engines = []
    context, _ = _context(settings, engines)
    executor = context.executor
    run = _answer_next(context)

    async def _run():
        for message in ("one", "two", "three"):
            await run(message)

    asyncio.run(_run())

    task_ids = [engine.get_all_task_ids()[0] for engine in engines[-3:]]
    assert executor.record_for(task_ids[0]) is None
    assert executor.record_for(task_ids[1]).status == TaskStatus.DONE
    assert executor.record_for(task_ids[2]).status == TaskStatus.DONE
    assert executor.get_task_context(task_ids[0]) is None
    assert executor.get_task_context(task_ids[2])["workflow"]["prompt"] == "three"
