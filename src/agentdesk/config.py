"""Configuration loading and directory resolution for agentdesk."""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:  # pragma: no cover - exercised on Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for Python 3.9/3.10
    import tomli as tomllib  # type: ignore[no-redef]

CONFIG_DIR_NAME = ".agentdesk_config"
CONFIG_FILE_NAME = "config.toml"
LOGS_DIR_NAME = "logs"
STATIC_DIR_NAME = "static"

ALLOWED_PROVIDER_IDS = ("echo", "deepseek", "qwen", "google", "anthropic", "openai", "openrouter")
DEFAULT_PROVIDER_ID = "echo"
DEFAULT_ECHO_MODEL = "echo-1"

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048
DEFAULT_MODEL_MAX_TOKENS = 8192
OPENROUTER_MODEL_MAX_TOKENS = 8000
MODEL_MAX_TOKENS = {
    "deepseek-chat": 8192,
    "deepseek-reasoner": 65536,
    "gemini-2.0-flash-thinking-exp-01-21": 65536,
    "gemini-1.5-flash-latest": 8192,
    "gemini-2.0-flash-exp": 8192,
    "gemini-1.5-flash-002": 8192,
    "gemini-1.5-flash-8b": 8192,
    "gemini-1.5-pro-latest": 8192,
    "gemini-1.5-pro-002": 8192,
    "gemini-exp-1206": 8192,
    "claude-3-7-sonnet-20250219": 128000,
    "claude-3-5-sonnet-latest": 8000,
    "claude-3-5-sonnet-20240620": 8000,
    "claude-3-5-haiku-latest": 8000,
    "claude-3-opus-latest": 8000,
    "claude-3-sonnet-20240229": 8000,
    "claude-3-haiku-20240307": 8000,
    "qwen-max": 8192,
    "qwen-plus": 8192,
    "qwen-vl-max": 8192,
}
QWEN_TIMEOUT_MS = 60000

DEFAULT_REQUEST_TIMEOUT_SEC = 60
DEFAULT_STREAM_TIMEOUT_SEC = 180
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_PREVIEW_URL = "http://localhost:5173/file-view"

DEFAULT_LOGS_ENABLED = True
DEFAULT_LOGS_FORMAT = "jsonl"
DEFAULT_LOGS_MAX_FILE_BYTES = 10 * 1024 * 1024
DEFAULT_LOGS_MAX_FILES = 5
DEFAULT_LOGS_REDACTION = "default"
DEFAULT_LOGS_LEVEL = "debug"
ALLOWED_LOG_FORMATS = ("jsonl",)
ALLOWED_LOG_REDACTION = ("default", "none", "strict")
ALLOWED_LOG_LEVELS = ("debug", "info", "warn", "error")


class ProjectConfigError(RuntimeError):
    """Raised when project configuration is missing or invalid."""


@dataclass
class ProviderConfig:
    provider_id: str
    enabled: bool = False
    model: str = ""
    api_key: str = ""
    base_url: str = ""


def default_provider_configs() -> Dict[str, ProviderConfig]:
    configs = {provider_id: ProviderConfig(provider_id=provider_id) for provider_id in ALLOWED_PROVIDER_IDS}
    configs[DEFAULT_PROVIDER_ID] = ProviderConfig(
        provider_id=DEFAULT_PROVIDER_ID,
        enabled=True,
        model=DEFAULT_ECHO_MODEL,
    )
    return configs


@dataclass
class AgentToggle:
    enabled: bool = True
    custom_prompt: str = ""


@dataclass
class ProjectConfig:
    default_provider: str = DEFAULT_PROVIDER_ID
    providers: Dict[str, ProviderConfig] = field(default_factory=default_provider_configs)
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    browser_agent: AgentToggle = field(default_factory=AgentToggle)
    file_agent: AgentToggle = field(default_factory=AgentToggle)
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT_SEC
    stream_timeout: int = DEFAULT_STREAM_TIMEOUT_SEC
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    workspace_base_dir: str = ""
    preview_url: str = DEFAULT_PREVIEW_URL
    logs_enabled: bool = DEFAULT_LOGS_ENABLED
    logs_format: str = DEFAULT_LOGS_FORMAT
    logs_max_file_bytes: int = DEFAULT_LOGS_MAX_FILE_BYTES
    logs_max_files: int = DEFAULT_LOGS_MAX_FILES
    logs_redaction: str = DEFAULT_LOGS_REDACTION
    logs_level: str = DEFAULT_LOGS_LEVEL


@dataclass
class LLMConfig:
    """Effective model configuration handed to the engine."""

    provider: str
    model: str
    api_key: str = ""
    base_url: str = ""
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    timeout_ms: Optional[int] = None
    options: Dict[str, Any] = field(default_factory=dict)
    provider_id: str = ""


@dataclass
class Settings:
    """Resolved settings for one orchestration context."""

    project_root: Path
    config_root: Path
    project: ProjectConfig = field(default_factory=ProjectConfig)

    @property
    def config_file(self) -> Path:
        return self.config_root / CONFIG_FILE_NAME

    @property
    def logs_dir(self) -> Path:
        return self.config_root / LOGS_DIR_NAME

    @property
    def workspace_base_dir(self) -> Path:
        configured = str(self.project.workspace_base_dir or "").strip()
        if not configured:
            return self.config_root / STATIC_DIR_NAME
        path = Path(configured).expanduser()
        if not path.is_absolute():
            path = self.project_root / path
        return path

    @property
    def preview_url(self) -> str:
        return self.project.preview_url or DEFAULT_PREVIEW_URL


def resolve_project_root(workspace_dir: Optional[Path] = None) -> Path:
    return (workspace_dir or Path.cwd()).resolve()


def resolve_project_config_root(workspace_dir: Optional[Path] = None) -> Path:
    return resolve_project_root(workspace_dir) / CONFIG_DIR_NAME


def project_config_exists(workspace_dir: Optional[Path] = None) -> bool:
    config_root = resolve_project_config_root(workspace_dir)
    return config_root.is_dir() and (config_root / CONFIG_FILE_NAME).is_file()


def _normalize_provider(provider: object) -> str:
    candidate = str(provider or DEFAULT_PROVIDER_ID).strip().lower() or DEFAULT_PROVIDER_ID
    if candidate not in ALLOWED_PROVIDER_IDS:
        return DEFAULT_PROVIDER_ID
    return candidate


def _safe_positive_int(value: object, default: int) -> int:
    try:
        converted = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return max(1, converted)


def _safe_positive_int_or_default(value: object, default: int) -> int:
    try:
        converted = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if converted <= 0:
        return default
    return converted


def _safe_temperature(value: object, default: float) -> float:
    try:
        converted = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if converted < 0:
        return default
    if converted > 2:
        return 2.0
    return converted


def _safe_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default


def _safe_text(value: object, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip()


def _safe_log_format(value: object, default: str) -> str:
    normalized = str(value or default).strip().lower()
    if normalized not in ALLOWED_LOG_FORMATS:
        return default
    return normalized


def _safe_redaction(value: object, default: str) -> str:
    normalized = str(value or default).strip().lower()
    if normalized not in ALLOWED_LOG_REDACTION:
        return default
    return normalized


def _safe_log_level(value: object, default: str) -> str:
    normalized = str(value or default).strip().lower()
    if normalized == "warning":
        normalized = "warn"
    if normalized not in ALLOWED_LOG_LEVELS:
        return default
    return normalized


def _section(data: Dict[str, object], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _safe_provider_configs(data: Dict[str, Any]) -> Dict[str, ProviderConfig]:
    merged = default_provider_configs()
    for provider_id in ALLOWED_PROVIDER_IDS:
        raw = data.get(provider_id)
        if not isinstance(raw, dict):
            continue
        default = merged[provider_id]
        merged[provider_id] = ProviderConfig(
            provider_id=provider_id,
            enabled=_safe_bool(raw.get("enabled"), default.enabled),
            model=_safe_text(raw.get("model"), default.model),
            api_key=_safe_text(raw.get("api_key")),
            base_url=_safe_text(raw.get("base_url")),
        )
    return merged


def _safe_agent_toggle(raw: Dict[str, Any]) -> AgentToggle:
    return AgentToggle(
        enabled=_safe_bool(raw.get("enabled"), True),
        custom_prompt=_safe_text(raw.get("custom_prompt")),
    )


def _parse_project_config_data(data: Dict[str, object]) -> ProjectConfig:
    model = _section(data, "model")
    chat = _section(data, "chat")
    agents = _section(data, "agents")
    network = _section(data, "network")
    workspace = _section(data, "workspace")
    runtime = _section(data, "runtime")
    logs = runtime.get("logs") if isinstance(runtime.get("logs"), dict) else {}

    return ProjectConfig(
        default_provider=_normalize_provider(model.get("default_provider")),
        providers=_safe_provider_configs(_section(data, "providers")),
        temperature=_safe_temperature(chat.get("temperature"), DEFAULT_TEMPERATURE),
        max_tokens=_safe_positive_int(chat.get("max_tokens"), DEFAULT_MAX_TOKENS),
        browser_agent=_safe_agent_toggle(_section(agents, "browser")),
        file_agent=_safe_agent_toggle(_section(agents, "file")),
        request_timeout=_safe_positive_int(network.get("request_timeout"), DEFAULT_REQUEST_TIMEOUT_SEC),
        stream_timeout=_safe_positive_int(network.get("stream_timeout"), DEFAULT_STREAM_TIMEOUT_SEC),
        retry_attempts=_safe_positive_int(network.get("retry_attempts"), DEFAULT_RETRY_ATTEMPTS),
        workspace_base_dir=_safe_text(workspace.get("base_dir")),
        preview_url=_safe_text(workspace.get("preview_url"), DEFAULT_PREVIEW_URL) or DEFAULT_PREVIEW_URL,
        logs_enabled=_safe_bool(logs.get("enabled"), DEFAULT_LOGS_ENABLED),
        logs_format=_safe_log_format(logs.get("format"), DEFAULT_LOGS_FORMAT),
        logs_max_file_bytes=_safe_positive_int_or_default(
            logs.get("max_file_bytes"),
            DEFAULT_LOGS_MAX_FILE_BYTES,
        ),
        logs_max_files=_safe_positive_int_or_default(logs.get("max_files"), DEFAULT_LOGS_MAX_FILES),
        logs_redaction=_safe_redaction(logs.get("redaction"), DEFAULT_LOGS_REDACTION),
        logs_level=_safe_log_level(logs.get("level"), DEFAULT_LOGS_LEVEL),
    )


def _toml_string(value: str) -> str:
    text = str(value or "").replace("\\", "\\\\").replace('"', '\\"')
    return '"{0}"'.format(text)


def _render_project_config(config: ProjectConfig) -> str:
    providers = default_provider_configs()
    providers.update(config.providers)

    lines: List[str] = [
        "[model]",
        "default_provider = {0}".format(_toml_string(config.default_provider)),
        "",
    ]
    for provider_id in ALLOWED_PROVIDER_IDS:
        provider = providers[provider_id]
        lines.extend(
            [
                "[providers.{0}]".format(provider_id),
                "enabled = {0}".format(str(bool(provider.enabled)).lower()),
                "model = {0}".format(_toml_string(provider.model)),
                "api_key = {0}".format(_toml_string(provider.api_key)),
                "base_url = {0}".format(_toml_string(provider.base_url)),
                "",
            ]
        )

    lines.extend(
        [
            "[chat]",
            "temperature = {0}".format(_safe_temperature(config.temperature, DEFAULT_TEMPERATURE)),
            "max_tokens = {0}".format(_safe_positive_int(config.max_tokens, DEFAULT_MAX_TOKENS)),
            "",
        ]
    )
    for name, toggle in (("browser", config.browser_agent), ("file", config.file_agent)):
        lines.extend(
            [
                "[agents.{0}]".format(name),
                "enabled = {0}".format(str(bool(toggle.enabled)).lower()),
                "custom_prompt = {0}".format(_toml_string(toggle.custom_prompt)),
                "",
            ]
        )
    lines.extend(
        [
            "[network]",
            "request_timeout = {0}".format(
                _safe_positive_int(config.request_timeout, DEFAULT_REQUEST_TIMEOUT_SEC)
            ),
            "stream_timeout = {0}".format(_safe_positive_int(config.stream_timeout, DEFAULT_STREAM_TIMEOUT_SEC)),
            "retry_attempts = {0}".format(_safe_positive_int(config.retry_attempts, DEFAULT_RETRY_ATTEMPTS)),
            "",
            "[workspace]",
            "base_dir = {0}".format(_toml_string(config.workspace_base_dir)),
            "preview_url = {0}".format(_toml_string(config.preview_url or DEFAULT_PREVIEW_URL)),
            "",
            "[runtime.logs]",
            "enabled = {0}".format(str(bool(config.logs_enabled)).lower()),
            "format = {0}".format(_toml_string(_safe_log_format(config.logs_format, DEFAULT_LOGS_FORMAT))),
            "max_file_bytes = {0}".format(
                _safe_positive_int_or_default(config.logs_max_file_bytes, DEFAULT_LOGS_MAX_FILE_BYTES)
            ),
            "max_files = {0}".format(_safe_positive_int_or_default(config.logs_max_files, DEFAULT_LOGS_MAX_FILES)),
            "redaction = {0}".format(_toml_string(_safe_redaction(config.logs_redaction, DEFAULT_LOGS_REDACTION))),
            "level = {0}".format(_toml_string(_safe_log_level(config.logs_level, DEFAULT_LOGS_LEVEL))),
            "",
        ]
    )
    return "\n".join(lines)


def initialize_project_config(workspace_dir: Optional[Path] = None, force: bool = False) -> Path:
    project_root = resolve_project_root(workspace_dir)
    config_root = resolve_project_config_root(project_root)

    if config_root.exists():
        if not force:
            raise ProjectConfigError(
                "配置目录已存在：{0} (configuration directory already exists)".format(config_root)
            )
        shutil.rmtree(config_root)

    (config_root / LOGS_DIR_NAME).mkdir(parents=True, exist_ok=True)
    (config_root / STATIC_DIR_NAME).mkdir(parents=True, exist_ok=True)
    (config_root / CONFIG_FILE_NAME).write_text(_render_project_config(ProjectConfig()), encoding="utf-8")
    return config_root


def load_project_config(config_root: Optional[Path] = None, workspace_dir: Optional[Path] = None) -> ProjectConfig:
    resolved_root = (config_root or resolve_project_config_root(workspace_dir)).resolve()
    config_file = resolved_root / CONFIG_FILE_NAME
    if not resolved_root.is_dir() or not config_file.is_file():
        raise ProjectConfigError(
            "缺少项目配置目录：{0}，请先执行 `agentdesk init` (missing project config directory)".format(
                resolved_root
            )
        )

    try:
        parsed = tomllib.loads(config_file.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ProjectConfigError("配置文件无效：{0} (invalid config file)".format(config_file)) from exc

    if not isinstance(parsed, dict):
        raise ProjectConfigError("配置文件无效：{0} (invalid config file)".format(config_file))

    return _parse_project_config_data(parsed)


def save_project_config(
    config: ProjectConfig,
    config_root: Optional[Path] = None,
    workspace_dir: Optional[Path] = None,
) -> Path:
    resolved_root = (config_root or resolve_project_config_root(workspace_dir)).resolve()
    config_file = resolved_root / CONFIG_FILE_NAME
    if not resolved_root.is_dir():
        raise ProjectConfigError(
            "缺少项目配置目录：{0}，请先执行 `agentdesk init` (missing project config directory)".format(
                resolved_root
            )
        )
    config_file.write_text(_render_project_config(config), encoding="utf-8")
    return config_file


def load_settings(workspace_dir: Optional[Path] = None) -> Settings:
    """Resolve settings from the project config directory."""

    project_root = resolve_project_root(workspace_dir)
    config_root = resolve_project_config_root(project_root)
    project_config = load_project_config(config_root=config_root)
    return Settings(project_root=project_root, config_root=config_root, project=project_config)


def _provider_type(provider_id: str) -> str:
    if provider_id in {"google", "anthropic", "deepseek", "openrouter", "echo"}:
        return provider_id
    return "openai"


def model_max_tokens(provider_id: str, model: str) -> int:
    limit = MODEL_MAX_TOKENS.get(model)
    if limit is not None:
        return limit
    if provider_id == "openrouter":
        return OPENROUTER_MODEL_MAX_TOKENS
    return DEFAULT_MODEL_MAX_TOKENS


def _usable_provider(provider: Optional[ProviderConfig]) -> bool:
    if provider is None or not provider.enabled or not provider.model:
        return False
    if provider.provider_id == "echo":
        return True
    return bool(provider.api_key)


def resolve_llm_config(config: ProjectConfig) -> Optional[LLMConfig]:
    """Pick the effective model: default provider first, then first usable one."""

    candidate = config.providers.get(config.default_provider)
    if not _usable_provider(candidate):
        candidate = None
        for provider_id in ALLOWED_PROVIDER_IDS:
            provider = config.providers.get(provider_id)
            if _usable_provider(provider):
                candidate = provider
                break
    if candidate is None:
        return None

    provider_id = candidate.provider_id
    provider_type = _provider_type(provider_id)
    llm = LLMConfig(
        provider=provider_type,
        model=candidate.model,
        api_key=candidate.api_key,
        max_tokens=min(config.max_tokens, model_max_tokens(provider_id, candidate.model)),
        temperature=config.temperature,
        provider_id=provider_id,
    )
    if candidate.base_url and provider_type in {"openai", "deepseek"}:
        llm.base_url = candidate.base_url
    if provider_id == "deepseek":
        llm.options = {"mode": "regular", "thinking": {"type": "disabled"}}
    elif provider_id == "qwen":
        llm.timeout_ms = QWEN_TIMEOUT_MS
    return llm


def describe_providers(config: ProjectConfig) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for provider_id in ALLOWED_PROVIDER_IDS:
        provider = config.providers.get(provider_id) or ProviderConfig(provider_id=provider_id)
        rows.append(
            {
                "provider_id": provider_id,
                "enabled": provider.enabled,
                "model": provider.model,
                "has_api_key": bool(provider.api_key),
                "usable": _usable_provider(provider),
            }
        )
    return rows

