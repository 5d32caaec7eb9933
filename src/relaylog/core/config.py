"""relaylog configuration: Pydantic model, load, and save."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from relaylog.core.constants import (
    CONFIG_FILENAME,
    DB_FILENAME,
    DEFAULT_PAGE_SIZE,
    DEFAULT_REMOTE_LATENCY_MS,
    DEFAULT_SEND_TIMEOUT_SECONDS,
    RELAYLOG_DIR_NAME,
    SPOOL_FILENAME,
)
from relaylog.core.exceptions import ConfigError, ConfigNotFoundError


def relaylog_dir() -> Path:
    """Return the relaylog data directory (~/.relaylog), creating it if needed."""
    d = Path.home() / RELAYLOG_DIR_NAME
    d.mkdir(mode=0o700, parents=True, exist_ok=True)
    return d


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class StoreConfig(BaseModel):
    path: str = ""  # empty → ~/.relaylog/relaylog.db
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=10_000)


class SinkConfig(BaseModel):
    kind: Literal["disabled", "jsonl", "http"] = "disabled"
    path: str = ""  # jsonl spool file; empty → ~/.relaylog/outbound.jsonl
    endpoint: str = ""  # http collector URL
    api_token: SecretStr | None = None
    timeout_seconds: float = DEFAULT_SEND_TIMEOUT_SECONDS
    remote_latency_ms: int = Field(default=DEFAULT_REMOTE_LATENCY_MS, ge=0)

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if not (0 < v <= 300):
            raise ValueError("timeout_seconds must be greater than 0 and at most 300")
        return v

    @model_validator(mode="after")
    def endpoint_required_for_http(self) -> SinkConfig:
        if self.kind == "http" and not self.endpoint.startswith(("http://", "https://")):
            raise ValueError("sink.endpoint must be an http(s) URL when sink.kind = 'http'")
        return self

    @property
    def spool_path(self) -> Path:
        if self.path:
            return Path(self.path).expanduser()
        return relaylog_dir() / SPOOL_FILENAME


class DrainConfig(BaseModel):
    policy: Literal["stop", "skip"] = "stop"


class ConnectivityConfig(BaseModel):
    initial: Literal["online", "offline"] = "online"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v.lower()


class RecordsConfig(BaseModel):
    # Merged into every record's metrics; caller-supplied keys win.
    default_metrics: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class RelayLogConfig(BaseModel):
    """Root relaylog configuration model."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    drain: DrainConfig = Field(default_factory=DrainConfig)
    connectivity: ConnectivityConfig = Field(default_factory=ConnectivityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    records: RecordsConfig = Field(default_factory=RecordsConfig)

    # Computed paths (not stored in config file)
    _config_path: Path | None = None

    @property
    def db_path(self) -> Path:
        if self.store.path:
            return Path(self.store.path).expanduser()
        return relaylog_dir() / DB_FILENAME


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def _config_file_path() -> Path:
    if env_path := os.environ.get("RELAYLOG_CONFIG"):
        return Path(env_path)
    return relaylog_dir() / CONFIG_FILENAME


def load_config(path: Path | None = None, *, missing_ok: bool = False) -> RelayLogConfig:
    """
    Load RelayLogConfig from TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (RELAYLOG_*)
      2. Config file (~/.relaylog/config.toml)
      3. Built-in defaults (only when *missing_ok* and no file exists)
    """
    import tomllib

    cfg_path = path or _config_file_path()

    data: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except Exception as exc:
            raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc
    elif not missing_ok:
        raise ConfigNotFoundError(f"Config file not found: {cfg_path}")

    _apply_env_overrides(data)

    try:
        config = RelayLogConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid config at {cfg_path}: {exc}") from exc

    config._config_path = cfg_path
    return config


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay RELAYLOG_* environment variables onto the parsed TOML data."""
    if db := os.environ.get("RELAYLOG_DB_PATH"):
        data.setdefault("store", {})["path"] = db
    if kind := os.environ.get("RELAYLOG_SINK_KIND"):
        data.setdefault("sink", {})["kind"] = kind
    if endpoint := os.environ.get("RELAYLOG_SINK_ENDPOINT"):
        data.setdefault("sink", {})["endpoint"] = endpoint
    if spool := os.environ.get("RELAYLOG_SINK_PATH"):
        data.setdefault("sink", {})["path"] = spool
    if token := os.environ.get("RELAYLOG_SINK_TOKEN"):
        data.setdefault("sink", {})["api_token"] = token
    if offline := os.environ.get("RELAYLOG_OFFLINE"):
        if offline.lower() in ("1", "true", "yes"):
            data.setdefault("connectivity", {})["initial"] = "offline"
    if level := os.environ.get("RELAYLOG_LOG_LEVEL"):
        data.setdefault("logging", {})["level"] = level


def save_config(config_data: dict[str, Any], path: Path | None = None) -> Path:
    """Write config dict to TOML file with secure permissions (0600)."""
    import tomli_w

    cfg_path = path or _config_file_path()
    cfg_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    # Write atomically
    tmp_path = cfg_path.with_suffix(".tmp")
    try:
        with open(tmp_path, "wb") as f:
            tomli_w.dump(config_data, f)
        tmp_path.rename(cfg_path)
    except Exception as exc:
        tmp_path.unlink(missing_ok=True)
        raise ConfigError(f"Cannot write config to {cfg_path}: {exc}") from exc

    cfg_path.chmod(0o600)
    return cfg_path
