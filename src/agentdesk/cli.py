"""Typer CLI entrypoints for agentdesk."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Callable, List, Set

import click
import typer
from typer.core import TyperGroup

from agentdesk.config import (
    ProjectConfigError,
    initialize_project_config,
    load_settings,
    project_config_exists,
    resolve_project_config_root,
    resolve_project_root,
)
from agentdesk.interaction.types import HumanResponse
from agentdesk.kernel.types import UIEvent
from agentdesk.service.commands import CommandSurface
from agentdesk.service.config_binder import ConfigBinder
from agentdesk.service.context import build_context, build_debug_log
from agentdesk.service.diagnostics import doctor_report
from agentdesk.stream.events import HUMAN_INTERACTION
from agentdesk.ui.render import (
    interaction_prompt_lines,
    render_doctor_text,
    render_event,
    render_file_preview,
    render_notice,
)
from agentdesk.ui.surface import PreviewBuffer


class AgentdeskGroup(TyperGroup):
    """Treat unknown first positional token as implicit `run` command."""

    def resolve_command(self, ctx: click.Context, args: List[str]):
        if args and not args[0].startswith("-"):
            known = set(self.list_commands(ctx))
            if args[0] not in known:
                run_command = self.get_command(ctx, "run")
                if run_command is not None:
                    return "run", run_command, args
        return super().resolve_command(ctx, args)


app = typer.Typer(
    no_args_is_help=True,
    help="agentdesk 任务编排命令行 (Agent task orchestration CLI)",
)
app.info.cls = AgentdeskGroup

config_app = typer.Typer(help="配置管理 (Configuration management)")
app.add_typer(config_app, name="config")


def _missing_config_message() -> str:
    return render_notice(
        "error",
        "当前目录缺少项目配置目录：{0}，请先执行 `agentdesk init`。".format(resolve_project_config_root()),
        "Missing project config directory. Run `agentdesk init` first.",
    )


def _require_project_config() -> None:
    if project_config_exists():
        return
    typer.echo(_missing_config_message(), err=True)
    raise typer.Exit(code=2)


def _auto_answer(event: UIEvent) -> Any:
    kind = str(event.get("kind") or "")
    if kind == "input":
        return ""
    if kind == "select":
        options = event.get("options") or []
        return list(options[:1])
    return True


def _prompt_answer(event: UIEvent) -> HumanResponse:
    request_id = str(event.get("requestId") or "")
    for line in interaction_prompt_lines(event):
        typer.echo(line)
    kind = str(event.get("kind") or "")
    if kind == "input":
        answer = typer.prompt("请输入 (Enter value)", default="")
        return HumanResponse(request_id=request_id, success=True, result=answer)
    if kind == "select":
        options = list(event.get("options") or [])
        raw = typer.prompt("请选择编号，逗号分隔 (Choose numbers, comma separated)", default="1")
        chosen = []
        for part in raw.split(","):
            part = part.strip()
            if part.isdigit() and 1 <= int(part) <= len(options):
                chosen.append(options[int(part) - 1])
        if not event.get("multiple"):
            chosen = chosen[:1]
        return HumanResponse(request_id=request_id, success=True, result=chosen)
    approved = typer.confirm("继续？ (Proceed?)", default=True)
    return HumanResponse(request_id=request_id, success=True, result=approved)


def _interaction_handler(commands: CommandSurface, yes: bool) -> Callable[[UIEvent], None]:
    broker = commands.context.broker
    prompts: Set["asyncio.Future[None]"] = set()

    def _auto(event: UIEvent) -> None:
        broker.handle_human_response(
            HumanResponse(
                request_id=str(event.get("requestId") or ""),
                success=True,
                result=_auto_answer(event),
            )
        )

    async def _ask(event: UIEvent) -> None:
        # Terminal prompts block, so they run off the event loop thread.
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(None, _prompt_answer, event)
        except click.Abort:
            response = HumanResponse(
                request_id=str(event.get("requestId") or ""),
                success=False,
                error="cancelled by operator",
            )
        broker.handle_human_response(response)

    def _on_event(event: UIEvent) -> None:
        # Answer after the broker has started waiting on the request.
        if yes:
            asyncio.get_running_loop().call_soon(_auto, event)
            return
        task = asyncio.ensure_future(_ask(event))
        prompts.add(task)
        task.add_done_callback(prompts.discard)

    return _on_event


async def _run_message(message: str, yes: bool) -> int:
    settings = load_settings()
    preview = PreviewBuffer()
    context = build_context(settings, preview_provider=lambda: preview)
    commands = CommandSurface(context)
    context.event_bus.subscribe("*", lambda event: render_event(event, sys.stdout))
    context.event_bus.subscribe(HUMAN_INTERACTION, _interaction_handler(commands, yes))
    try:
        outcome = await commands.run(message)
    finally:
        context.close()

    if preview.latest is not None:
        render_file_preview(preview.latest, sys.stdout)
    if outcome.get("status") != "ok":
        typer.echo(render_notice("error", "任务失败。", "Task failed."), err=True)
        return 1
    if outcome.get("detail"):
        typer.echo(render_notice("warn", str(outcome["detail"])), err=True)
    return 0


@app.command("init")
def init_cmd(
    force: bool = typer.Option(
        False,
        "--force",
        help="重建 .agentdesk_config（会先删除已有目录） (Recreate config directory)",
    ),
) -> None:
    try:
        config_root = initialize_project_config(force=force)
    except ProjectConfigError as exc:
        typer.echo(render_notice("error", str(exc)), err=True)
        raise typer.Exit(code=2)

    typer.echo(
        render_notice(
            "success",
            "项目配置初始化完成：{0}".format(config_root),
            "Initialized project config at: {0}".format(config_root),
        )
    )


@app.command("run")
def run_cmd(
    text_parts: List[str] = typer.Argument(..., help="任务指令 (Task instruction)"),
    yes: bool = typer.Option(False, "--yes", help="自动回答人工确认 (Auto-answer human interactions)"),
) -> None:
    message = " ".join(text_parts).strip()
    if not message:
        typer.echo(render_notice("error", "请输入指令文本。", "Prompt text is required."), err=True)
        raise typer.Exit(code=2)
    _require_project_config()
    try:
        exit_code = asyncio.run(_run_message(message, yes))
    except ProjectConfigError as exc:
        typer.echo(render_notice("error", str(exc)), err=True)
        raise typer.Exit(code=2)
    raise typer.Exit(code=exit_code)


@app.command("doctor")
def doctor_cmd(
    output_format: str = typer.Option(
        "json",
        "--format",
        help="输出格式：json|text (Output format)",
    ),
) -> None:
    normalized_format = output_format.strip().lower()
    if normalized_format not in {"json", "text"}:
        typer.echo(
            render_notice("error", "不支持的格式：{0}".format(output_format), "Unsupported format: {0}".format(output_format)),
            err=True,
        )
        raise typer.Exit(code=2)

    _require_project_config()
    try:
        settings = load_settings()
    except ProjectConfigError as exc:
        typer.echo(render_notice("error", str(exc)), err=True)
        raise typer.Exit(code=2)

    report = doctor_report(settings, build_debug_log(settings))
    if normalized_format == "json":
        typer.echo(json.dumps(report, ensure_ascii=True, indent=2))
        return
    typer.echo(render_doctor_text(report))


async def _reload_config() -> bool:
    settings = load_settings()
    context = build_context(settings)
    binder = ConfigBinder(resolve_project_root(), debug_log=context.debug_log)
    binder.bind(context.executor)
    context.event_bus.subscribe("*", lambda event: render_event(event, sys.stdout))
    try:
        return await binder.reload()
    finally:
        context.close()


@config_app.command(
    "reload",
    help=(
        "校验配置并用其重建一个新的引擎；不会影响其他进程中正在运行的任务 "
        "(Validate the config and rebuild a fresh engine from it; tasks running in other processes are not affected)"
    ),
)
def config_reload_cmd() -> None:
    _require_project_config()
    try:
        ok = asyncio.run(_reload_config())
    except ProjectConfigError as exc:
        typer.echo(render_notice("error", str(exc)), err=True)
        raise typer.Exit(code=2)
    if not ok:
        typer.echo(render_notice("error", "配置重载失败。", "Configuration reload failed."), err=True)
        raise typer.Exit(code=1)
    typer.echo(render_notice("success", "配置已重载。", "Configuration reloaded."))
