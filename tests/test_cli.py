from __future__ import annotations

import json
import threading
from pathlib import Path

import typer
from typer.testing import CliRunner

import agentdesk.cli


def _combined_output(result) -> str:
    try:
        return result.stdout + result.stderr
    except Exception:
        return result.stdout


def test_run_requires_project_config(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()

    result = runner.invoke(agentdesk.cli.app, ["run", "hello"])

    assert result.exit_code == 2
    assert "agentdesk init" in _combined_output(result)


def test_init_creates_config_and_refuses_overwrite(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()

    first = runner.invoke(agentdesk.cli.app, ["init"])
    second = runner.invoke(agentdesk.cli.app, ["init"])
    forced = runner.invoke(agentdesk.cli.app, ["init", "--force"])

    assert first.exit_code == 0
    assert (tmp_path / ".agentdesk_config" / "config.toml").is_file()
    assert second.exit_code == 2
    assert forced.exit_code == 0


def test_run_echoes_and_previews_file(isolated_env):
    runner = CliRunner()

    result = runner.invoke(agentdesk.cli.app, ["run", "hello", "world"])

    assert result.exit_code == 0
    output = _combined_output(result)
    assert "hello world" in output
    assert "Assistant" in output
    assert "echo.txt" in output


def test_unknown_first_token_routes_to_run(isolated_env):
    runner = CliRunner()

    result = runner.invoke(agentdesk.cli.app, ["hello"])

    assert result.exit_code == 0
    assert "hello" in _combined_output(result)


def test_run_with_yes_answers_confirmation(isolated_env):
    runner = CliRunner()

    result = runner.invoke(agentdesk.cli.app, ["run", "please confirm this", "--yes"])

    assert result.exit_code == 0
    output = _combined_output(result)
    assert "Answered" in output
    assert "please confirm this" in output


def test_run_prompts_for_confirmation(isolated_env):
    runner = CliRunner()

    result = runner.invoke(agentdesk.cli.app, ["run", "confirm deploy"], input="n\n")

    assert result.exit_code == 0
    output = _combined_output(result)
    assert "Proceed with: confirm deploy?" in output


def test_doctor_outputs_json(isolated_env):
    runner = CliRunner()
    result = runner.invoke(agentdesk.cli.app, ["doctor"])

    assert result.exit_code == 0
    parsed = json.loads(result.stdout)
    assert parsed["provider"] == "echo"
    assert parsed["model"] == "echo-1"
    assert parsed["logs_enabled"] is True
    assert parsed["workspace_base_dir"].endswith("static")
    assert any(row["provider_id"] == "deepseek" for row in parsed["providers"])


def test_doctor_text_and_bad_format(isolated_env):
    runner = CliRunner()

    text = runner.invoke(agentdesk.cli.app, ["doctor", "--format", "text"])
    bad = runner.invoke(agentdesk.cli.app, ["doctor", "--format", "yaml"])

    assert text.exit_code == 0
    assert "Doctor Report" in text.stdout
    assert "effective_provider=echo effective_model=echo-1" in text.stdout
    assert bad.exit_code == 2


def test_config_reload(isolated_env):
    runner = CliRunner()

    ok = runner.invoke(agentdesk.cli.app, ["config", "reload"])
    (isolated_env["config_root"] / "config.toml").write_text("[model\n", encoding="utf-8")
    broken = runner.invoke(agentdesk.cli.app, ["config", "reload"])

    assert ok.exit_code == 0
    assert "Configuration reloaded" in _combined_output(ok)
    assert broken.exit_code in {1, 2}


def test_config_reload_help_says_it_only_validates():
    group = typer.main.get_command(agentdesk.cli.app)
    reload_cmd = group.commands["config"].commands["reload"]

    assert "Validate the config" in reload_cmd.help


def test_prompted_answer_runs_off_the_event_loop(isolated_env, monkeypatch):
    loop_thread = threading.get_ident()
    prompt_threads = []

    def _confirm(*args, **kwargs):
        prompt_threads.append(threading.get_ident())
        return True

    monkeypatch.setattr(agentdesk.cli.typer, "confirm", _confirm)
    runner = CliRunner()

    result = runner.invoke(agentdesk.cli.app, ["run", "confirm deploy"])

    assert result.exit_code == 0
    assert len(prompt_threads) == 1
    assert prompt_threads[0] != loop_thread
    assert "confirm deploy" in _combined_output(result)
