"""Task executor: engine binding, running-task bookkeeping and abort sweeps."""

from __future__ import annotations

import asyncio
import traceback
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from agentdesk.config import Settings
from agentdesk.engine.factory import EngineFactory
from agentdesk.engine.types import STOP_REASON_ABORT, Engine, TaskResult
from agentdesk.interaction.broker import InteractionBroker
from agentdesk.interaction.types import InteractionAbortedError, InteractionError
from agentdesk.kernel.debug_log import DebugLogWriter
from agentdesk.kernel.types import EventSink, new_id, now_ms
from agentdesk.stream.dispatcher import StreamDispatcher
from agentdesk.stream.events import config_reloaded_event, error_event
from agentdesk.task.callbacks import OrchestratorCallback
from agentdesk.task.registry import RunningTaskRegistry
from agentdesk.task.types import EngineNotInitializedError, TaskRecord, TaskStatus
from agentdesk.ui.surface import UISurface
from agentdesk.workspace import WorkspaceAllocator

ALL_TASKS_ABORTED_MESSAGE = "All tasks aborted"
CONFIG_RELOAD_MESSAGE = "Engine configuration reloaded"
EXECUTOR_DESTROYED_MESSAGE = "Task executor destroyed"
ENGINE_NOT_INITIALIZED_MESSAGE = "Engine not initialized"
UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"

ABORT_REASON_CONFIG_RELOAD = "config-reload"
ABORT_REASON_ABORT_ALL = "abort-all"
ABORT_REASON_CANCEL = "cancel"

MAX_REMEMBERED_TASKS = 64

SettingsLoader = Callable[[], Settings]


class TaskExecutor:
    """Runs tasks against the current engine instance.

    ``run`` and ``restore_task`` build a task-scoped engine that becomes the
    current binding, so a second ``run`` supersedes the first one's engine
    while the first execution keeps going on its own instance. Every engine
    is also remembered under its task id, which is what ``abort_task`` and
    ``modify`` consult first.
    """

    def __init__(
        self,
        settings: Settings,
        factory: EngineFactory,
        broker: InteractionBroker,
        dispatcher: StreamDispatcher,
        surface: UISurface,
        *,
        settings_loader: Optional[SettingsLoader] = None,
        debug_log: Optional[DebugLogWriter] = None,
        event_sink: Optional[EventSink] = None,
        settle_timeout: float = 5.0,
    ) -> None:
        self._settings = settings
        self._factory = factory
        self._broker = broker
        self._dispatcher = dispatcher
        self._surface = surface
        self._settings_loader = settings_loader
        self._debug_log = debug_log or DebugLogWriter.disabled()
        self._event_sink = event_sink
        self._settle_timeout = max(0.0, float(settle_timeout))

        self._callback = OrchestratorCallback(dispatcher, broker)
        self._running = RunningTaskRegistry()
        self._records: Dict[str, TaskRecord] = {}
        self._engines_by_task: Dict[str, Engine] = {}
        self._inflight: Dict[str, List[asyncio.Event]] = {}
        self._engine: Optional[Engine] = None
        self._workspace = WorkspaceAllocator(settings.workspace_base_dir)
        self._bind_configuration(settings)

    @property
    def engine(self) -> Optional[Engine]:
        return self._engine

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def workspace(self) -> WorkspaceAllocator:
        return self._workspace

    @property
    def factory(self) -> EngineFactory:
        return self._factory

    def has_running_task(self) -> bool:
        return self._running.has_running()

    def running_task_ids(self) -> List[str]:
        return self._running.ids()

    def record_for(self, task_id: str) -> Optional[TaskRecord]:
        return self._records.get(task_id)

    def known_task_ids(self) -> List[str]:
        ids: List[str] = []
        if self._engine is not None:
            ids.extend(self._engine.get_all_task_ids())
        ids.extend(self._running.ids())
        return list(dict.fromkeys(ids))

    async def run(self, message: str) -> Optional[TaskResult]:
        task_id = new_id("task")
        try:
            work_dir = self._workspace.allocate(task_id)
            engine = self._factory.build_for_task(work_dir, self._callback)
        except Exception as exc:
            self._report_failure("run", exc, task_id=task_id)
            return None
        self._bind_task_engine(task_id, engine)
        return await self._guarded(task_id, lambda: engine.run(message, task_id), work_dir=work_dir)

    async def modify(self, task_id: str, message: str) -> Optional[TaskResult]:
        engine = self._engine_for(task_id)
        if engine is None:
            self._report_failure("modify", EngineNotInitializedError(ENGINE_NOT_INITIALIZED_MESSAGE), task_id=task_id)
            return None
        try:
            await engine.modify(task_id, message)
        except Exception as exc:
            self._report_failure("modify", exc, task_id=task_id)
            return None
        return await self._guarded(task_id, lambda: engine.execute(task_id))

    async def execute(self, task_id: str) -> Optional[TaskResult]:
        engine = self._engine_for(task_id)
        if engine is None:
            self._report_failure("execute", EngineNotInitializedError(ENGINE_NOT_INITIALIZED_MESSAGE), task_id=task_id)
            return None
        return await self._guarded(task_id, lambda: engine.execute(task_id))

    async def abort_task(self, task_id: str, reason: str = ABORT_REASON_CANCEL) -> bool:
        if task_id not in self._running:
            self._log("debug", "abort_skipped", "task is not running", task_id=task_id, data={"reason": reason})
            return False
        accepted, _ = await self._abort(task_id, reason)
        return accepted

    async def cancel_task(self, task_id: str) -> Dict[str, Any]:
        if self._engine is None and task_id not in self._engines_by_task:
            return {"success": False, "error": "Service not initialized"}
        if task_id not in self._running:
            return {"success": False, "error": "Task is not running"}
        accepted, error = await self._abort(task_id, ABORT_REASON_CANCEL)
        if error:
            return {"success": False, "error": error}
        return {"success": accepted}

    async def restore_task(
        self,
        workflow: Dict[str, Any],
        context_params: Optional[Dict[str, Any]] = None,
        plan_request: Any = None,
        plan_result: Any = None,
    ) -> Optional[str]:
        task_id = ""
        try:
            task_id = str((workflow or {}).get("taskId") or "").strip()
            if not task_id:
                raise ValueError("workflow has no taskId")
            work_dir = self._workspace.allocate(task_id)
            engine = self._factory.build_for_task(work_dir, self._callback)
            self._bind_task_engine(task_id, engine)
            context = await engine.init_context(dict(workflow), dict(context_params or {}))
            if plan_request is not None and plan_result is not None:
                context.plan_request = plan_request
                context.plan_result = plan_result
        except Exception as exc:
            self._report_failure("restore", exc, task_id=task_id or None)
            return None
        self._remember(
            TaskRecord(
                task_id=task_id,
                status=TaskStatus.DONE,
                work_dir=work_dir,
                started_at_ms=now_ms(),
                finished_at_ms=now_ms(),
            )
        )
        self._log("info", "restored", "task restored", task_id=task_id)
        return task_id

    def get_task_context(self, task_id: str) -> Optional[Dict[str, Any]]:
        engine = self._engine_for(task_id)
        if engine is None:
            return None
        context = engine.get_task(task_id)
        if context is None:
            return None
        payload: Dict[str, Any] = {
            "workflow": context.workflow,
            "contextParams": dict(context.variables),
        }
        if context.plan_request is not None:
            payload["planRequest"] = context.plan_request
        if context.plan_result is not None:
            payload["planResult"] = context.plan_result
        return payload

    async def abort_all_tasks(self, reason: str = ABORT_REASON_ABORT_ALL) -> None:
        task_ids = self.known_task_ids()
        if task_ids:
            await asyncio.gather(*(self._abort(task_id, reason) for task_id in task_ids))
        self._broker.reject_all_human_requests(InteractionAbortedError(ALL_TASKS_ABORTED_MESSAGE))
        await self._wait_for_settlement()
        leftovers = self._running.ids()
        if leftovers:
            self._log(
                "warn",
                "force_deregister",
                "tasks did not settle after abort",
                data={"task_ids": leftovers, "timeout_s": self._settle_timeout},
            )
            self._running.clear()
        self._log("info", "abort_all", "aborted all tasks", data={"task_ids": task_ids, "reason": reason})

    async def reload_config(self, settings: Optional[Settings] = None) -> bool:
        task_ids = self.known_task_ids()
        # Pending interactions fail with the reload reason, not the abort one.
        self._broker.reject_all_human_requests(InteractionAbortedError(CONFIG_RELOAD_MESSAGE))
        if task_ids:
            await asyncio.gather(*(self._abort(task_id, ABORT_REASON_CONFIG_RELOAD) for task_id in task_ids))

        try:
            if settings is None and self._settings_loader is not None:
                settings = self._settings_loader()
            settings = settings or self._settings
            self._settings = settings
            self._workspace = WorkspaceAllocator(settings.workspace_base_dir)
            self._engines_by_task.clear()
            self._dispatcher.set_preview_url(settings.preview_url)
            self._bind_configuration(settings)
        except Exception as exc:
            self._engine = None
            self._report_failure("reload", exc)
            return False

        llms = self._factory.llms
        model = llms.model if llms is not None else None
        provider = llms.provider if llms is not None else None
        if not self._surface_unavailable():
            self._surface.send(config_reloaded_event(model, provider))
        self._log(
            "info",
            "config_reloaded",
            "engine rebuilt from configuration",
            data={"model": model, "provider": provider, "aborted": task_ids, "generation": self._factory.generation},
        )
        return True

    def destroy(self) -> None:
        self._broker.reject_all_human_requests(InteractionError(EXECUTOR_DESTROYED_MESSAGE))
        self._engine = None
        self._engines_by_task.clear()

    def _bind_configuration(self, settings: Settings) -> None:
        self._factory.configure(settings)
        self._engine = self._factory.build_default(self._callback)

    def _bind_task_engine(self, task_id: str, engine: Engine) -> None:
        self._engine = engine
        self._engines_by_task.pop(task_id, None)
        self._engines_by_task[task_id] = engine
        self._prune(self._engines_by_task)

    def _remember(self, record: TaskRecord) -> None:
        self._records.pop(record.task_id, None)
        self._records[record.task_id] = record
        self._prune(self._records)

    def _prune(self, entries: Dict[str, Any]) -> None:
        """Drop the oldest settled entries beyond MAX_REMEMBERED_TASKS."""

        for task_id in list(entries.keys())[:-1]:
            if len(entries) <= MAX_REMEMBERED_TASKS:
                return
            if task_id in self._running:
                continue
            entries.pop(task_id, None)

    def _engine_for(self, task_id: str) -> Optional[Engine]:
        return self._engines_by_task.get(task_id) or self._engine

    async def _abort(self, task_id: str, reason: str) -> Tuple[bool, Optional[str]]:
        engine = self._engine_for(task_id)
        if engine is None:
            return False, None
        record = self._records.get(task_id)
        if record is not None and not record.settled:
            record.abort_requested = True
        try:
            accepted = bool(await engine.abort_task(task_id, reason))
        except Exception as exc:
            self._report_failure("abort", exc, task_id=task_id)
            return False, str(exc)
        self._log("info", "abort", "abort requested", task_id=task_id, data={"reason": reason, "accepted": accepted})
        return accepted, None

    async def _guarded(
        self,
        task_id: str,
        work: Callable[[], Awaitable[TaskResult]],
        *,
        work_dir: Optional[Path] = None,
    ) -> Optional[TaskResult]:
        previous = self._records.get(task_id)
        record = TaskRecord(
            task_id=task_id,
            work_dir=work_dir or (previous.work_dir if previous is not None else None),
            started_at_ms=now_ms(),
        )
        settled = asyncio.Event()
        self._inflight.setdefault(task_id, []).append(settled)
        self._running.add(task_id)
        self._remember(record)
        self._emit("task.started", {"task_id": task_id, "status": record.status.value})

        try:
            result = await work()
        except Exception as exc:
            record.status = TaskStatus.ERRORED
            record.error = str(exc)
            self._report_failure("execute", exc, task_id=task_id)
            return None
        else:
            if result is not None and result.success:
                record.status = TaskStatus.DONE
            elif record.abort_requested or (result is not None and result.stop_reason == STOP_REASON_ABORT):
                record.status = TaskStatus.ABORTED
            else:
                record.status = TaskStatus.ERRORED
                record.error = str(result.error or "") if result is not None else ""
            return result
        finally:
            if record.status == TaskStatus.RUNNING:
                # Cancelled from outside.
                record.status = TaskStatus.ABORTED
            record.finished_at_ms = now_ms()
            self._running.discard(task_id)
            settled.set()
            waiters = self._inflight.get(task_id, [])
            if settled in waiters:
                waiters.remove(settled)
            if not waiters:
                self._inflight.pop(task_id, None)
                self._dispatcher.forget(task_id)
                self._broker.clear_staged(task_id)
            self._emit("task.settled", {"task_id": task_id, "status": record.status.value, "error": record.error})

    async def _wait_for_settlement(self) -> None:
        events = [event for waiters in self._inflight.values() for event in waiters]
        if not events:
            return
        waits = [asyncio.ensure_future(event.wait()) for event in events]
        try:
            await asyncio.wait(waits, timeout=self._settle_timeout)
        finally:
            for wait in waits:
                if not wait.done():
                    wait.cancel()

    def _report_failure(self, operation: str, exc: BaseException, *, task_id: Optional[str] = None) -> None:
        message = str(exc) or UNKNOWN_ERROR_MESSAGE
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        self._log(
            "error",
            "{0}_failed".format(operation),
            message,
            task_id=task_id,
            data={"error_type": type(exc).__name__},
        )
        if not self._surface_unavailable():
            self._surface.send(error_event(message, detail=detail, task_id=task_id))

    def _surface_unavailable(self) -> bool:
        return self._surface is None or self._surface.is_destroyed()

    def _log(
        self,
        level: str,
        kind: str,
        message: str,
        *,
        task_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._debug_log.write_entry(
            level=level,
            component="task",
            kind=kind,
            task_id=task_id,
            message=message,
            data=data,
        )

    def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self._event_sink is None:
            return
        try:
            self._event_sink(event_type, dict(payload))
        except Exception:
            return
