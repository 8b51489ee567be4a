"""Doctor report for the effective configuration."""

from __future__ import annotations

from typing import Any, Dict, Optional

from agentdesk.config import Settings, describe_providers, resolve_llm_config
from agentdesk.kernel.debug_log import DebugLogWriter


def doctor_report(settings: Settings, debug_log: Optional[DebugLogWriter] = None) -> Dict[str, Any]:
    project = settings.project
    llms = resolve_llm_config(project)
    report: Dict[str, Any] = {
        "project_root": str(settings.project_root),
        "config_file": str(settings.config_file),
        "default_provider": project.default_provider,
        "provider": llms.provider_id if llms is not None else "",
        "model": llms.model if llms is not None else "",
        "max_tokens": llms.max_tokens if llms is not None else 0,
        "providers": describe_providers(project),
        "browser_agent_enabled": project.browser_agent.enabled,
        "file_agent_enabled": project.file_agent.enabled,
        "request_timeout": project.request_timeout,
        "stream_timeout": project.stream_timeout,
        "retry_attempts": project.retry_attempts,
        "workspace_base_dir": str(settings.workspace_base_dir),
        "preview_url": settings.preview_url,
    }
    if debug_log is not None:
        report.update(debug_log.status())
    return report
