"""Structured debug log writer with size-based rotation and redaction."""

from __future__ import annotations

import json
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from agentdesk.kernel.types import UIEvent, now_ms

LOG_FILE_NAME = "debug.log.jsonl"
LOG_LEVELS = ("debug", "info", "warn", "error")

REDACTED = "***REDACTED***"
_SENSITIVE_KEY_RE = re.compile(
    r"(password|secret|token|authorization|cookie|api[_-]?key|access[_-]?key|private[_-]?key)",
    re.IGNORECASE,
)
_BEARER_RE = re.compile(r"(?i)\bbearer\s+([^\s,;]+)")
_KEY_VALUE_RE = re.compile(
    r"(?i)\b(api[_-]?key|access[_-]?key|token|secret|authorization|cookie|private[_-]?key)\b\s*[:=]\s*([^\s,;]+)"
)
_SK_KEY_RE = re.compile(r"\bsk-[A-Za-z0-9]{8,}\b")


def redact_text(text: str) -> str:
    if not text:
        return text
    masked = _BEARER_RE.sub("Bearer {0}".format(REDACTED), text)
    masked = _KEY_VALUE_RE.sub(lambda m: "{0}={1}".format(m.group(1), REDACTED), masked)
    return _SK_KEY_RE.sub(REDACTED, masked)


def redact_value(value: Any, mode: str = "default") -> Any:
    """Mask secrets in ``value``.

    ``default`` masks sensitive keys and secret-looking substrings; ``strict``
    masks every scalar and keeps only the structure.
    """

    if mode == "none":
        return value
    if isinstance(value, dict):
        return {
            key: REDACTED if _SENSITIVE_KEY_RE.search(str(key)) else redact_value(item, mode)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_value(item, mode) for item in value]
    if mode == "strict":
        return REDACTED
    if isinstance(value, str):
        return redact_text(value)
    return value


def _level_rank(level: str) -> int:
    normalized = str(level or "").strip().lower()
    if normalized not in LOG_LEVELS:
        return LOG_LEVELS.index("info")
    return LOG_LEVELS.index(normalized)


class DebugLogWriter:
    """Best-effort JSONL debug log keyed by task and interaction ids.

    Write failures are counted, never raised, so diagnostics cannot take
    down a running task.
    """

    def __init__(
        self,
        *,
        logs_dir: Path,
        enabled: bool,
        log_format: str = "jsonl",
        max_file_bytes: int = 10 * 1024 * 1024,
        max_files: int = 5,
        redaction: str = "default",
        min_level: str = "debug",
    ) -> None:
        self._logs_dir = Path(logs_dir)
        self._enabled = bool(enabled)
        # jsonl is the only format written today.
        self._log_format = "jsonl"
        self._max_file_bytes = max(1, int(max_file_bytes or 0))
        self._max_files = max(1, int(max_files or 0))
        self._redaction = str(redaction or "default").strip().lower()
        if self._redaction not in {"none", "default", "strict"}:
            self._redaction = "default"
        self._min_rank = _level_rank(min_level)
        self._write_errors = 0
        self._skipped = 0
        self._lock = threading.Lock()
        if self._enabled:
            try:
                self._logs_dir.mkdir(parents=True, exist_ok=True)
            except Exception:
                self._write_errors += 1

    @classmethod
    def disabled(cls) -> "DebugLogWriter":
        return cls(logs_dir=Path("."), enabled=False)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def active_log_file(self) -> Path:
        return self._logs_dir / LOG_FILE_NAME

    def write_event(self, event: UIEvent) -> None:
        """Record one UI-bound event; error events are logged at ``error``."""

        event_type = str(event.get("type") or "")
        timestamp = event.get("timestamp")
        self.write_entry(
            level="error" if event_type == "error" else "info",
            component="ui",
            kind="event",
            task_id=event.get("taskId"),
            request_id=event.get("requestId"),
            event_type=event_type,
            message="event:{0}".format(event_type),
            data={key: value for key, value in event.items() if key not in ("type", "timestamp")},
            ts_ms=timestamp if isinstance(timestamp, int) else None,
        )

    def write_entry(
        self,
        *,
        level: str,
        component: str,
        kind: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        task_id: Optional[str] = None,
        request_id: Optional[str] = None,
        event_type: Optional[str] = None,
        ts_ms: Optional[int] = None,
    ) -> None:
        if not self._enabled:
            return
        if _level_rank(level) < self._min_rank:
            self._skipped += 1
            return

        record = {
            "ts_ms": int(ts_ms if ts_ms is not None else now_ms()),
            "level": str(level or "info"),
            "component": str(component or "core"),
            "kind": str(kind or "diagnostic"),
            "task_id": str(task_id or ""),
            "request_id": str(request_id or ""),
            "event_type": str(event_type or ""),
            "message": str(message or ""),
            "data": dict(data or {}),
        }
        if self._redaction != "none":
            record["message"] = redact_text(record["message"])
            record["data"] = redact_value(record["data"], self._redaction)

        with self._lock:
            try:
                line = json.dumps(record, ensure_ascii=True, separators=(",", ":"), default=str)
                payload = (line + "\n").encode("utf-8")
                self._logs_dir.mkdir(parents=True, exist_ok=True)
                if self._active_size() + len(payload) > self._max_file_bytes:
                    self._rotate_locked()
                with self.active_log_file.open("ab") as fp:
                    fp.write(payload)
            except Exception:
                self._write_errors += 1

    def status(self) -> Dict[str, Any]:
        with self._lock:
            rotated = self._rotated_files() if self._enabled else []
            active_size = self._active_size() if self._enabled else 0
            total_size = active_size + sum(int(path.stat().st_size) for path in rotated)
            return {
                "logs_enabled": self._enabled,
                "logs_dir": str(self._logs_dir),
                "logs_active_file": str(self.active_log_file),
                "logs_active_size_bytes": int(active_size),
                "logs_max_file_bytes": self._max_file_bytes,
                "logs_max_files": self._max_files,
                "logs_total_size_bytes": int(total_size),
                "logs_rotated_files": [str(path) for path in rotated],
                "logs_write_errors": int(self._write_errors),
                "logs_min_level": LOG_LEVELS[self._min_rank],
                "logs_skipped_below_level": int(self._skipped),
            }

    def _active_size(self) -> int:
        active = self.active_log_file
        return int(active.stat().st_size) if active.exists() else 0

    def _rotated_files(self) -> List[Path]:
        return [
            self._rotated_file(index)
            for index in range(1, self._max_files + 1)
            if self._rotated_file(index).exists()
        ]

    def _rotate_locked(self) -> None:
        self._rotated_file(self._max_files).unlink(missing_ok=True)
        for index in range(self._max_files - 1, 0, -1):
            src = self._rotated_file(index)
            if src.exists():
                src.replace(self._rotated_file(index + 1))
        if self.active_log_file.exists():
            self.active_log_file.replace(self._rotated_file(1))

    def _rotated_file(self, index: int) -> Path:
        return Path("{0}.{1}".format(self.active_log_file, index))
