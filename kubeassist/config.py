"""
kubeassist settings: model endpoint, chat limits, audit log, HTTP server
and the cluster list.

Later layers win: built-in defaults, the YAML file, a named profile from
that file, ``KUBEASSIST_*`` environment variables, then explicit overrides.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml


class ConfigurationError(Exception):
    """The assistant cannot run with the current configuration."""


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class AIProviderConfig:
    endpoint: str = "https://api.openai.com/v1"
    model: str = "gpt-4o"
    api_key: str = ""
    api_key_env: str = "OPENAI_API_KEY"
    enabled: bool = False
    timeout_seconds: int = 120
    max_retries: int = 0

    def resolve_api_key(self) -> str:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env, "")
        return ""

    def validate(self) -> None:
        """Raise ``ConfigurationError`` unless the assistant can be used."""
        if not self.enabled:
            raise ConfigurationError("AI assistant is not enabled")
        if not self.endpoint:
            raise ConfigurationError("AI endpoint is not configured")
        if not self.resolve_api_key():
            raise ConfigurationError("AI API key is not configured")


@dataclass
class ChatConfig:
    max_rounds: int = 10
    deadline_seconds: float = 120.0
    tool_timeout_seconds: float = 30.0
    event_queue_size: int = 64
    max_line_bytes: int = 1024 * 1024
    max_risk: str = "DESTRUCTIVE"
    actor: str = "ai-assistant"


@dataclass
class AuditConfig:
    enabled: bool = True
    path: str = "~/.kubeassist/audit.jsonl"
    max_size_mb: int = 10
    keep_files: int = 5


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    cors_origins: list[str] = field(default_factory=list)


@dataclass
class ClusterConfig:
    id: str = ""
    name: str = ""
    version: str = ""
    # Path to a kubeconfig file, "in-cluster", "demo", or "" for the default.
    kubeconfig: str = ""
    context: str = ""


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class KubeAssistConfig:
    ai: AIProviderConfig = field(default_factory=AIProviderConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    clusters: list[ClusterConfig] = field(default_factory=list)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self, *, redact: bool = True) -> dict:
        d = asdict(self)
        if redact and d["ai"].get("api_key"):
            d["ai"]["api_key"] = "******"
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Set e.g. ``chat.max_rounds`` on the config object."""
    *path, attr = dotpath.split(".")
    for part in path:
        obj = getattr(obj, part)
    setattr(obj, attr, value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Nested mappings merge key by key; anything else in *overlay* replaces."""
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _deep_merge(current, value)
        merged[key] = value
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Environment values are strings; convert to the field type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    if target_type is list:
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Unknown keys in a section are ignored."""
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in (raw or {}).items() if k in known})


def _build_clusters(raw: list | None) -> list[ClusterConfig]:
    clusters = []
    for entry in raw or []:
        cluster = _build_section(ClusterConfig, entry)
        cluster.id = str(cluster.id)
        if not cluster.id:
            raise ConfigurationError(f"cluster entry without id: {entry!r}")
        cluster.name = cluster.name or cluster.id
        clusters.append(cluster)
    return clusters


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "KUBEASSIST_AI_ENDPOINT":         ("ai.endpoint", str),
    "KUBEASSIST_AI_MODEL":            ("ai.model", str),
    "KUBEASSIST_AI_API_KEY":          ("ai.api_key", str),
    "KUBEASSIST_AI_API_KEY_ENV":      ("ai.api_key_env", str),
    "KUBEASSIST_AI_ENABLED":          ("ai.enabled", bool),
    "KUBEASSIST_AI_TIMEOUT":          ("ai.timeout_seconds", int),
    "KUBEASSIST_AI_MAX_RETRIES":      ("ai.max_retries", int),
    "KUBEASSIST_CHAT_MAX_ROUNDS":     ("chat.max_rounds", int),
    "KUBEASSIST_CHAT_DEADLINE":       ("chat.deadline_seconds", float),
    "KUBEASSIST_CHAT_TOOL_TIMEOUT":   ("chat.tool_timeout_seconds", float),
    "KUBEASSIST_CHAT_MAX_RISK":       ("chat.max_risk", str),
    "KUBEASSIST_CHAT_ACTOR":          ("chat.actor", str),
    "KUBEASSIST_AUDIT_ENABLED":       ("audit.enabled", bool),
    "KUBEASSIST_AUDIT_PATH":          ("audit.path", str),
    "KUBEASSIST_AUDIT_SIZE_MB":       ("audit.max_size_mb", int),
    "KUBEASSIST_AUDIT_KEEP":          ("audit.keep_files", int),
    "KUBEASSIST_SERVER_HOST":         ("server.host", str),
    "KUBEASSIST_SERVER_PORT":         ("server.port", int),
    "KUBEASSIST_SERVER_CORS_ORIGINS": ("server.cors_origins", list),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def find_config_path() -> Path | None:
    """Find a config file in the standard locations."""
    explicit = os.environ.get("KUBEASSIST_CONFIG")
    if explicit:
        return Path(explicit).expanduser()
    candidates = [
        Path.cwd() / "kubeassist.yaml",
        Path.cwd() / "kubeassist.yml",
        Path.home() / ".config" / "kubeassist" / "config.yaml",
        Path.home() / ".kubeassist" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> KubeAssistConfig:
    """
    Load the effective configuration.

    A missing *config_path* file is not an error; defaults apply.  *profile*
    must name an entry under ``profiles:``.  *cli_overrides* maps dotted
    field paths (``"server.port"``) to values and is applied last.
    """
    raw: dict[str, Any] = {}

    if config_path is not None:
        path = Path(config_path).expanduser()
        if path.is_file():
            loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            if not isinstance(loaded, dict):
                raise ConfigurationError(f"{path}: top level must be a mapping")
            raw = loaded

    if profile:
        overlay = raw.get("profiles", {}).get(profile)
        if overlay is None:
            raise ConfigurationError(f"unknown profile: {profile}")
        raw = _deep_merge(raw, overlay)

    cfg = KubeAssistConfig(
        ai=_build_section(AIProviderConfig, raw.get("ai", {})),
        chat=_build_section(ChatConfig, raw.get("chat", {})),
        audit=_build_section(AuditConfig, raw.get("audit", {})),
        server=_build_section(ServerConfig, raw.get("server", {})),
        clusters=_build_clusters(raw.get("clusters")),
        profiles=raw.get("profiles", {}),
    )

    for name, (dotpath, target_type) in _ENV_MAP.items():
        if name in os.environ:
            _apply_dotpath(cfg, dotpath, _coerce(os.environ[name], target_type))

    for dotpath, value in (cli_overrides or {}).items():
        _apply_dotpath(cfg, dotpath, value)

    return cfg
