"""Presentation helpers for agentdesk CLI output."""

from __future__ import annotations

import io
from typing import Any, Dict, List, Optional, TextIO

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from agentdesk.kernel.types import UIEvent
from agentdesk.stream.events import (
    CONFIG_RELOADED,
    ERROR,
    HUMAN_INTERACTION,
    HUMAN_INTERACTION_RESULT,
    TASK_ABORTED_BY_SYSTEM,
    TEXT,
    TOOL_RESULT,
    TOOL_USE,
    WORKFLOW,
)
from agentdesk.ui.surface import FileUpdate


def bilingual_text(zh: str, en: Optional[str] = None) -> str:
    if not en:
        return zh
    return "{0} ({1})".format(zh, en)


def render_notice(level: str, zh: str, en: Optional[str] = None) -> str:
    prefix_map = {
        "info": bilingual_text("提示", "Info"),
        "warn": bilingual_text("警告", "Warning"),
        "error": bilingual_text("错误", "Error"),
        "success": bilingual_text("成功", "Success"),
    }
    prefix = prefix_map.get(level, bilingual_text("提示", "Info"))
    return "{0}: {1}".format(prefix, bilingual_text(zh, en))


def _is_tty(stream: TextIO, forced: Optional[bool]) -> bool:
    if forced is not None:
        return forced
    isatty = getattr(stream, "isatty", None)
    if callable(isatty):
        try:
            return bool(isatty())
        except Exception:
            return False
    return False


def _panel(title: str, body: str, stream: TextIO, is_tty: Optional[bool], border_style: str) -> None:
    normalized = body if body is not None else ""
    if _is_tty(stream, is_tty):
        console = Console(file=stream, highlight=False, soft_wrap=True)
        console.print(Panel(normalized, title=title, border_style=border_style, box=box.ROUNDED))
        return

    lines = normalized.splitlines() or [""]
    width = max([len(title)] + [len(line) for line in lines])
    stream.write("+-{0}-+\n".format(title.ljust(width, "-")))
    for line in lines:
        stream.write("| {0} |\n".format(line.ljust(width)))
    stream.write("+-{0}-+\n".format("-" * width))
    stream.flush()


def render_assistant_panel(text: str, stream: TextIO, is_tty: Optional[bool] = None) -> None:
    _panel(bilingual_text("助手回复", "Assistant"), text, stream, is_tty, "cyan")


def render_file_preview(update: FileUpdate, stream: TextIO, is_tty: Optional[bool] = None) -> None:
    title = "{0}: {1}".format(bilingual_text("文件预览", "File Preview"), update.file_name)
    _panel(title, update.content, stream, is_tty, "green")


def event_line(event: UIEvent) -> Optional[str]:
    """One-line summary for stream events, or None when not shown inline."""

    event_type = str(event.get("type") or "")
    task_id = str(event.get("taskId") or "")
    if event_type == WORKFLOW:
        workflow = event.get("workflow") or {}
        return "{0} task={1} name={2}".format(
            bilingual_text("工作流", "Workflow"),
            task_id,
            str(workflow.get("name") or "") if isinstance(workflow, dict) else "",
        )
    if event_type == TOOL_USE:
        return "{0} tool={1} id={2}".format(
            bilingual_text("调用工具", "Tool call"),
            event.get("toolName", ""),
            event.get("toolId", ""),
        )
    if event_type == TOOL_RESULT:
        if event.get("error"):
            return "{0} tool={1} error={2}".format(
                bilingual_text("工具失败", "Tool failed"),
                event.get("toolName", ""),
                event.get("error"),
            )
        return "{0} tool={1}".format(bilingual_text("工具完成", "Tool done"), event.get("toolName", ""))
    if event_type == HUMAN_INTERACTION_RESULT:
        return "{0} id={1}".format(bilingual_text("已回应", "Answered"), event.get("requestId", ""))
    if event_type == CONFIG_RELOADED:
        return render_notice(
            "info",
            "配置已重载：{0}/{1}".format(event.get("provider") or "-", event.get("model") or "-"),
            "Configuration reloaded",
        )
    if event_type == TASK_ABORTED_BY_SYSTEM:
        return render_notice("warn", "任务已被系统中止：{0}".format(task_id), "Task aborted by system")
    if event_type == ERROR:
        return render_notice("error", str(event.get("error") or ""))
    return None


def render_event(event: UIEvent, stream: TextIO, is_tty: Optional[bool] = None) -> None:
    event_type = str(event.get("type") or "")
    if event_type == TEXT:
        if event.get("streamDone", True):
            render_assistant_panel(str(event.get("text") or ""), stream, is_tty)
        return
    if event_type == HUMAN_INTERACTION:
        return
    line = event_line(event)
    if line is None:
        return
    if _is_tty(stream, is_tty):
        console = Console(file=stream, highlight=False, soft_wrap=True)
        style = "red" if event_type == ERROR else "dim"
        console.print(Text(line, style=style))
        return
    stream.write(line + "\n")
    stream.flush()


def interaction_prompt_lines(event: UIEvent) -> List[str]:
    lines = [
        render_notice("warn", "任务需要人工确认。", "The task needs your input."),
        "task={0} agent={1} kind={2}".format(
            event.get("taskId", ""),
            event.get("agentName", ""),
            event.get("kind", ""),
        ),
        str(event.get("prompt") or ""),
    ]
    options = event.get("options")
    if isinstance(options, list):
        for index, option in enumerate(options, start=1):
            lines.append("{0}) {1}".format(index, option))
    help_context = event.get("helpContext")
    if isinstance(help_context, dict) and help_context.get("actionUrl"):
        lines.append("url={0}".format(help_context.get("actionUrl")))
    return lines


def render_doctor_text(report: Dict[str, Any]) -> str:
    provider_lines = []
    for row in report.get("providers") or []:
        if not isinstance(row, dict):
            continue
        provider_lines.append(
            "{0} enabled={1} model={2} key={3} usable={4}".format(
                row.get("provider_id", ""),
                bool(row.get("enabled")),
                row.get("model") or "-",
                "yes" if row.get("has_api_key") else "no",
                bool(row.get("usable")),
            )
        )

    lines = [
        bilingual_text("系统诊断", "Doctor Report"),
        "project_root={0}".format(report.get("project_root", "")),
        "config_file={0}".format(report.get("config_file", "")),
        "",
        bilingual_text("模型", "Model"),
        "default_provider={0}".format(report.get("default_provider") or ""),
        "effective_provider={0} effective_model={1}".format(
            report.get("provider") or "-",
            report.get("model") or "-",
        ),
        *provider_lines,
        "",
        bilingual_text("智能体", "Agents"),
        "browser_agent={0} file_agent={1}".format(
            bool(report.get("browser_agent_enabled")),
            bool(report.get("file_agent_enabled")),
        ),
        "",
        bilingual_text("网络", "Network"),
        "request_timeout={0}s stream_timeout={1}s retry_attempts={2}".format(
            int(report.get("request_timeout") or 0),
            int(report.get("stream_timeout") or 0),
            int(report.get("retry_attempts") or 0),
        ),
        "",
        bilingual_text("工作区", "Workspace"),
        "workspace_base_dir={0}".format(report.get("workspace_base_dir", "")),
        "preview_url={0}".format(report.get("preview_url", "")),
        "",
        bilingual_text("调试日志", "Debug Logs"),
        "logs_enabled={0}".format(bool(report.get("logs_enabled"))),
        "logs_active_size_bytes={0} logs_total_size_bytes={1}".format(
            int(report.get("logs_active_size_bytes") or 0),
            int(report.get("logs_total_size_bytes") or 0),
        ),
        "logs_max_file_bytes={0} logs_max_files={1}".format(
            int(report.get("logs_max_file_bytes") or 0),
            int(report.get("logs_max_files") or 0),
        ),
        "logs_write_errors={0} logs_min_level={1}".format(
            int(report.get("logs_write_errors") or 0),
            report.get("logs_min_level") or "debug",
        ),
    ]

    logs_dir = report.get("logs_dir")
    if logs_dir:
        lines.append("logs_dir={0}".format(logs_dir))
    logs_active_file = report.get("logs_active_file")
    if logs_active_file:
        lines.append("logs_active_file={0}".format(logs_active_file))
    rotated = report.get("logs_rotated_files")
    if isinstance(rotated, list):
        lines.append("logs_rotated_files={0}".format(len(rotated)))

    return "\n".join(lines)


def preview_rendered_event(event: UIEvent) -> str:
    """Helper for tests that need a deterministic text snapshot."""

    stream = io.StringIO()
    render_event(event, stream=stream, is_tty=False)
    return stream.getvalue()
