"""Keeps bound executors in sync with the project configuration file."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from agentdesk.config import (
    CONFIG_FILE_NAME,
    ProjectConfig,
    ProjectConfigError,
    Settings,
    load_settings,
    resolve_project_config_root,
    save_project_config,
)
from agentdesk.kernel.debug_log import DebugLogWriter
from agentdesk.task.executor import TaskExecutor


class ConfigBinder:
    """Owns the config file and reloads every bound executor on change."""

    def __init__(self, project_root: Path, *, debug_log: Optional[DebugLogWriter] = None) -> None:
        self._project_root = Path(project_root)
        self._config_root = resolve_project_config_root(self._project_root)
        self._debug_log = debug_log or DebugLogWriter.disabled()
        self._executors: List[TaskExecutor] = []
        self._last_mtime = self._current_mtime()

    @property
    def config_file(self) -> Path:
        return self._config_root / CONFIG_FILE_NAME

    def bind(self, executor: TaskExecutor) -> None:
        if executor not in self._executors:
            self._executors.append(executor)

    def unbind(self, executor: TaskExecutor) -> None:
        if executor in self._executors:
            self._executors.remove(executor)

    async def save(self, config: ProjectConfig) -> bool:
        save_project_config(config, config_root=self._config_root)
        self._last_mtime = self._current_mtime()
        self._log("info", "config_saved", "configuration saved", data={"path": str(self.config_file)})
        return await self.reload()

    async def poll(self) -> bool:
        """Reload when the file changed on disk; returns whether it did."""

        mtime = self._current_mtime()
        if mtime == self._last_mtime:
            return False
        self._last_mtime = mtime
        await self.reload()
        return True

    async def reload(self) -> bool:
        try:
            settings = load_settings(self._project_root)
        except ProjectConfigError as exc:
            self._log("error", "config_invalid", str(exc), data={"path": str(self.config_file)})
            return False

        ok = True
        for executor in list(self._executors):
            if not await executor.reload_config(settings):
                ok = False
        self._log(
            "info" if ok else "warn",
            "config_reload",
            "configuration reloaded",
            data={"executors": len(self._executors), "ok": ok},
        )
        return ok

    def load(self) -> Settings:
        return load_settings(self._project_root)

    def _current_mtime(self) -> Optional[float]:
        try:
            return self.config_file.stat().st_mtime
        except OSError:
            return None

    def _log(self, level: str, kind: str, message: str, *, data: Optional[dict] = None) -> None:
        self._debug_log.write_entry(level=level, component="config", kind=kind, message=message, data=data)
