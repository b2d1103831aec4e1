"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < env vars < CLI flags

The loaded configuration is frozen.  It is built once at startup and passed
explicitly to every component that needs it.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    api_key_env: str = "CHAT_API_KEY"
    max_body_bytes: int = 100_000
    max_header_bytes: int = 16_384
    max_header_count: int = 100
    read_timeout_seconds: float = 10.0
    request_timeout_seconds: float = 180.0


@dataclass(frozen=True)
class LLMProviderConfig:
    name: str = "openai"
    model: str = "gpt-4o"
    api_base: str = "https://api.openai.com/v1"
    api_key_env: str = "OPENAI_API_KEY"
    temperature: float | None = None
    timeout_seconds: float = 120.0
    max_retries: int = 2


@dataclass(frozen=True)
class AgentConfig:
    max_rounds: int = 2
    tool_timeout_seconds: float = 30.0
    site_owner: str = "the site owner"


@dataclass(frozen=True)
class KubeConfig:
    api_server: str = "https://127.0.0.1:6443"
    token_env: str = "KUBE_TOKEN"
    ca_cert_path: str = ""
    in_cluster_api_server: str = "https://kubernetes.default.svc"
    in_cluster_token_path: str = "/var/run/secrets/kubernetes.io/serviceaccount/token"
    in_cluster_ca_path: str = "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"
    timeout_seconds: float = 15.0


@dataclass(frozen=True)
class PortfolioConfig:
    production_url: str = "https://about.calum.run"
    development_url: str = "http://localhost:3000"
    max_content_chars: int = 20_000
    timeout_seconds: float = 15.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    rich: bool = True


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KubechatConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    llm: LLMProviderConfig = field(default_factory=LLMProviderConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    kube: KubeConfig = field(default_factory=KubeConfig)
    portfolio: PortfolioConfig = field(default_factory=PortfolioConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    production: bool = False

    @property
    def kube_api_server(self) -> str:
        if self.production:
            return self.kube.in_cluster_api_server
        return self.kube.api_server

    @property
    def kube_ca_path(self) -> str:
        if self.production:
            return self.kube.in_cluster_ca_path
        return self.kube.ca_cert_path

    @property
    def portfolio_url(self) -> str:
        if self.production:
            return self.portfolio.production_url
        return self.portfolio.development_url

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Secrets:
    """Credentials resolved once at startup.  Never logged."""

    chat_api_key: str
    llm_api_key: str = ""
    kube_token: str = ""

    def __repr__(self) -> str:
        return "Secrets(***)"


class ConfigError(Exception):
    """Raised when configuration or credentials are unusable."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _set_dotpath(raw: dict, dotpath: str, value: Any) -> None:
    """Walk raw via dotpath, creating sub-dicts, and set the final key."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        nxt = raw.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            raw[part] = nxt
        raw = nxt
    raw[parts[-1]] = value


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.strip().lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    return value


def _build_section(cls: type, raw: dict | None) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in (raw or {}).items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "KUBECHAT_SERVER_HOST":            ("server.host", str),
    "KUBECHAT_SERVER_PORT":            ("server.port", int),
    "KUBECHAT_SERVER_API_KEY_ENV":     ("server.api_key_env", str),
    "KUBECHAT_SERVER_MAX_BODY":        ("server.max_body_bytes", int),
    "KUBECHAT_SERVER_READ_TIMEOUT":    ("server.read_timeout_seconds", float),
    "KUBECHAT_SERVER_REQUEST_TIMEOUT": ("server.request_timeout_seconds", float),
    "KUBECHAT_LLM_NAME":               ("llm.name", str),
    "KUBECHAT_LLM_MODEL":              ("llm.model", str),
    "KUBECHAT_LLM_API_BASE":           ("llm.api_base", str),
    "KUBECHAT_LLM_API_KEY_ENV":        ("llm.api_key_env", str),
    "KUBECHAT_LLM_TIMEOUT":            ("llm.timeout_seconds", float),
    "KUBECHAT_LLM_MAX_RETRIES":        ("llm.max_retries", int),
    "KUBECHAT_AGENT_MAX_ROUNDS":       ("agent.max_rounds", int),
    "KUBECHAT_AGENT_TOOL_TIMEOUT":     ("agent.tool_timeout_seconds", float),
    "KUBECHAT_AGENT_SITE_OWNER":       ("agent.site_owner", str),
    "KUBECHAT_KUBE_API_SERVER":        ("kube.api_server", str),
    "KUBECHAT_KUBE_TOKEN_ENV":         ("kube.token_env", str),
    "KUBECHAT_KUBE_CA_CERT":           ("kube.ca_cert_path", str),
    "KUBECHAT_PORTFOLIO_PROD_URL":     ("portfolio.production_url", str),
    "KUBECHAT_PORTFOLIO_DEV_URL":      ("portfolio.development_url", str),
    "KUBECHAT_LOG_LEVEL":              ("logging.level", str),
    "KUBECHAT_LOG_RICH":               ("logging.rich", bool),
    "KUBECHAT_PRODUCTION":             ("production", bool),
    # Names used by the existing container deployment.
    "KUBE_API_SERVER":                 ("kube.api_server", str),
    "KUBE_CA_CERT":                    ("kube.ca_cert_path", str),
    "PRODUCTION_MODE":                 ("production", bool),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
    environ: dict[str, str] | None = None,
) -> KubechatConfig:
    """
    Build a KubechatConfig by layering sources in precedence order:

        defaults  <  config file  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    environ : environment mapping, defaults to ``os.environ``
    """
    env = os.environ if environ is None else environ
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            if not isinstance(file_data, dict):
                raise ConfigError(f"Config file must contain a mapping: {p}")
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    profiles = raw.pop("profiles", None) or {}
    if profile:
        profile_data = profiles.get(profile)
        if profile_data is None:
            raise ConfigError(f"Unknown config profile: {profile}")
        raw = _deep_merge(raw, profile_data)

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = env.get(env_var)
        if val is not None and val != "":
            try:
                _set_dotpath(raw, dotpath, _coerce(val, target_type))
            except ValueError as e:
                raise ConfigError(f"Invalid value for {env_var}: {val!r}") from e

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            if value is not None:
                _set_dotpath(raw, dotpath, value)

    try:
        return KubechatConfig(
            server=_build_section(ServerConfig, raw.get("server")),
            llm=_build_section(LLMProviderConfig, raw.get("llm")),
            agent=_build_section(AgentConfig, raw.get("agent")),
            kube=_build_section(KubeConfig, raw.get("kube")),
            portfolio=_build_section(PortfolioConfig, raw.get("portfolio")),
            logging=_build_section(LoggingConfig, raw.get("logging")),
            production=bool(raw.get("production", False)),
        )
    except TypeError as e:
        raise ConfigError(f"Invalid config section: {e}") from e


def resolve_secrets(
    cfg: KubechatConfig,
    environ: dict[str, str] | None = None,
    *,
    require_chat_key: bool = True,
) -> Secrets:
    """
    Read credentials named by *cfg* from the environment.

    In production the Kubernetes token comes from the mounted service
    account file instead of the environment.  The chat API key is only
    optional for commands that do not serve HTTP.
    """
    env = os.environ if environ is None else environ

    chat_api_key = env.get(cfg.server.api_key_env, "")
    if not chat_api_key and require_chat_key:
        raise ConfigError(
            f"Chat API key is not set (expected env var {cfg.server.api_key_env})"
        )

    if cfg.production:
        token_path = Path(cfg.kube.in_cluster_token_path)
        try:
            kube_token = token_path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise ConfigError(f"Cannot read service account token: {token_path}") from e
    else:
        kube_token = env.get(cfg.kube.token_env, "")

    return Secrets(
        chat_api_key=chat_api_key,
        llm_api_key=env.get(cfg.llm.api_key_env, ""),
        kube_token=kube_token,
    )
