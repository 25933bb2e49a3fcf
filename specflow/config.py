from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import dotenv_values

DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_CONTEXT_FILE = "codebase_context.txt"
DEFAULT_ENV_FILE = ".env.local"

DEFAULT_IGNORE = [
    "node_modules",
    ".git",
    "dist",
    "build",
    ".next",
    "coverage",
    ".venv",
    "venv",
    "__pycache__",
    ".env",
    ".env.local",
]

DEFAULT_EXTENSIONS = [
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".mjs",
    ".cjs",
    ".json",
    ".md",
    ".css",
    ".html",
    ".sql",
    ".py",
]

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are the Lead Architect for SpecFlow.\n"
    "Focus on scalable architecture and clean production-ready fixes.\n"
    "Mention the specific file paths found in the context."
)

# Provider keys are copied into adapter settings once, at load time.
PROVIDER_KEY_ENVS = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
}

RESPONSE_MODES = {"text", "structured"}


@dataclass
class AdapterConfig:
    name: str
    type: str
    enabled: bool = True
    settings: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 4000
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:8080"])
    max_body_bytes: int = 2 * 1024 * 1024


@dataclass
class ContextConfig:
    project_root: Path = field(default_factory=lambda: Path.cwd())
    context_file: str = DEFAULT_CONTEXT_FILE
    ignore: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORE))
    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    max_file_bytes: int = 0
    max_total_bytes: int = 0

    @property
    def context_path(self) -> Path:
        return self.project_root / self.context_file


@dataclass
class AnalysisConfig:
    response_mode: str = "text"
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    adapter: Optional[str] = None


@dataclass
class AppConfig:
    version: str = "1"
    default_adapter: Optional[str] = "gemini"
    adapters: List[AdapterConfig] = field(
        default_factory=lambda: [AdapterConfig(name="gemini", type="gemini")]
    )
    server: ServerConfig = field(default_factory=ServerConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    audit_log: Optional[Path] = None

    @property
    def audit_log_path(self) -> Path:
        if self.audit_log is not None:
            return self.audit_log
        return self.context.project_root / "audit.log"


def _parse_csv_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _parse_adapter(raw: Dict[str, Any]) -> AdapterConfig:
    return AdapterConfig(
        name=str(raw.get("name", "")),
        type=str(raw.get("type", "")),
        enabled=bool(raw.get("enabled", True)),
        settings=dict(raw.get("settings", {})),
    )


def _parse_server(raw: Dict[str, Any]) -> ServerConfig:
    cfg = ServerConfig()
    if "host" in raw:
        cfg.host = str(raw["host"])
    if "port" in raw:
        cfg.port = int(raw["port"])
    if "cors_origins" in raw:
        cfg.cors_origins = [str(o) for o in raw["cors_origins"]]
    if "max_body_bytes" in raw:
        cfg.max_body_bytes = int(raw["max_body_bytes"])
    return cfg


def _parse_context(raw: Dict[str, Any], base_dir: Path) -> ContextConfig:
    cfg = ContextConfig()
    if "project_root" in raw:
        root = Path(str(raw["project_root"])).expanduser()
        cfg.project_root = root if root.is_absolute() else base_dir / root
    if "context_file" in raw:
        cfg.context_file = str(raw["context_file"])
    if "ignore" in raw:
        cfg.ignore = [str(n) for n in raw["ignore"]]
    if "extensions" in raw:
        cfg.extensions = [str(e) for e in raw["extensions"]]
    if "max_file_bytes" in raw:
        cfg.max_file_bytes = int(raw["max_file_bytes"])
    if "max_total_bytes" in raw:
        cfg.max_total_bytes = int(raw["max_total_bytes"])
    return cfg


def _parse_analysis(raw: Dict[str, Any]) -> AnalysisConfig:
    cfg = AnalysisConfig()
    if "response_mode" in raw:
        cfg.response_mode = str(raw["response_mode"])
    if "system_instruction" in raw:
        cfg.system_instruction = str(raw["system_instruction"])
    if raw.get("adapter"):
        cfg.adapter = str(raw["adapter"])
    return cfg


# Keep parsing straightforward so configs stay human-editable.
def load_config(path: str | Path) -> AppConfig:
    path = Path(path)
    data = json.loads(path.read_text(encoding="utf-8"))
    base_dir = path.resolve().parent
    config = AppConfig(version=str(data.get("version", "1")))
    if "default_adapter" in data:
        config.default_adapter = data.get("default_adapter")
    if "adapters" in data:
        config.adapters = [_parse_adapter(a) for a in data.get("adapters", [])]
    config.server = _parse_server(data.get("server") or {})
    config.context = _parse_context(data.get("context") or {}, base_dir)
    config.analysis = _parse_analysis(data.get("analysis") or {})
    if data.get("audit_log"):
        audit = Path(str(data["audit_log"])).expanduser()
        config.audit_log = audit if audit.is_absolute() else base_dir / audit
    validate_config(config)
    return config


def apply_env_overrides(config: AppConfig, environ: Mapping[str, str]) -> AppConfig:
    port = environ.get("SPECFLOW_PORT") or environ.get("PORT")
    if port and port.strip().isdigit():
        config.server.port = int(port.strip())
    if environ.get("SPECFLOW_HOST"):
        config.server.host = environ["SPECFLOW_HOST"].strip()
    origins = _parse_csv_list(environ.get("SPECFLOW_CORS_ORIGINS"))
    if origins:
        config.server.cors_origins = origins
    if environ.get("SPECFLOW_PROJECT_ROOT"):
        config.context.project_root = Path(environ["SPECFLOW_PROJECT_ROOT"]).expanduser()
    if environ.get("SPECFLOW_RESPONSE_MODE"):
        config.analysis.response_mode = environ["SPECFLOW_RESPONSE_MODE"].strip().lower()
    if environ.get("SPECFLOW_AUDIT_LOG"):
        config.audit_log = Path(environ["SPECFLOW_AUDIT_LOG"]).expanduser()

    for adapter in config.adapters:
        env_var = PROVIDER_KEY_ENVS.get(adapter.type)
        if not env_var or adapter.settings.get("api_key"):
            continue
        value = environ.get(env_var)
        if value and value.strip():
            adapter.settings["api_key"] = value.strip()
    validate_config(config)
    return config


def validate_config(config: AppConfig) -> None:
    if config.analysis.response_mode not in RESPONSE_MODES:
        raise ValueError(
            f"Unknown response_mode {config.analysis.response_mode!r}; "
            f"expected one of {sorted(RESPONSE_MODES)}"
        )
    for ext in config.context.extensions:
        if not ext.startswith("."):
            raise ValueError(f"Extension {ext!r} must include the leading dot")
    if config.server.max_body_bytes < 0:
        raise ValueError("max_body_bytes must be >= 0")


def build_config(
    config_path: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Assemble the process-wide config: defaults, JSON file, then environment.

    ``.env.local`` in the project root is merged under the real environment so
    values exported in the shell win over the file.
    """
    env: Dict[str, str] = dict(os.environ if environ is None else environ)
    path = config_path or env.get("SPECFLOW_CONFIG")
    if path:
        config = load_config(path)
    elif Path(DEFAULT_CONFIG_FILE).exists():
        config = load_config(DEFAULT_CONFIG_FILE)
    else:
        config = AppConfig()

    root = Path(env.get("SPECFLOW_PROJECT_ROOT") or config.context.project_root).expanduser()
    env_file = root / DEFAULT_ENV_FILE
    if env_file.is_file():
        file_values = {k: v for k, v in dotenv_values(env_file).items() if v is not None}
        env = {**file_values, **env}
    return apply_env_overrides(config, env)


def select_adapter(config: AppConfig, name: Optional[str]) -> Optional[AdapterConfig]:
    if name:
        for a in config.adapters:
            if a.name == name:
                return a
    if config.default_adapter:
        for a in config.adapters:
            if a.name == config.default_adapter:
                return a
    for a in config.adapters:
        if a.enabled:
            return a
    return None
