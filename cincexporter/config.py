from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

import yaml

from .util import as_bool, env_bool, env_str, short_hostname

log = logging.getLogger(__name__)

DEFAULT_GRAPHITE_HOST = "localhost"
DEFAULT_STATUS_COMMAND = ["sudo", "cinc-server-ctl", "status"]
STALE_SOURCES = ("local", "database")
MIN_INTERVAL_S = 5

class ConfigError(ValueError):
    pass

@dataclass(frozen=True)
class Config:
    database_url: str
    graphite_host: str = DEFAULT_GRAPHITE_HOST
    graphite_port: int = 2003
    prefix: str = "vlg.cinc"
    host_label: str = ""
    stale_after_minutes: int = 60
    stale_source: str = "local"   # local | database
    interval_s: int = 60
    status_command: List[str] = field(default_factory=lambda: list(DEFAULT_STATUS_COMMAND))
    dry_run: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def with_overrides(self, **kwargs: Any) -> "Config":
        changes = {k: v for k, v in kwargs.items() if v is not None}
        if "interval_s" in changes:
            changes["interval_s"] = max(MIN_INTERVAL_S, _as_int("interval_s", changes["interval_s"]))
        return replace(self, **changes) if changes else self

def normalize_database_url(url: str) -> str:
    # SQLAlchemy only accepts the postgresql:// spelling
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url

def read_config_file(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not load config from {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data

def _env_overrides() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    pairs = [
        ("database_url", "DATABASE_URL"),
        ("graphite_host", "GRAPHITE_HOST"),
        ("graphite_port", "GRAPHITE_PORT"),
        ("prefix", "METRICS_PREFIX"),
        ("stale_after_minutes", "STALE_AFTER_MINUTES"),
        ("stale_source", "STALE_SOURCE"),
        ("interval_s", "POLL_INTERVAL"),
        ("status_command", "STATUS_COMMAND"),
        ("log_level", "LOG_LEVEL"),
        ("log_file", "LOG_FILE"),
    ]
    for key, var in pairs:
        v = env_str(var)
        if v is not None:
            out[key] = v

    # METRICS_HOST may be set to "" on purpose to drop the host segment
    host = os.getenv("METRICS_HOST")
    if host is None:
        host = env_str("HOSTNAME")
    if host is not None:
        out["host_label"] = short_hostname(host.strip()) if host.strip() else ""
    if env_bool("DRY_RUN"):
        out["dry_run"] = True
    return out

def _as_int(key: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {value!r}") from None

def _as_command(value: Any) -> List[str]:
    if isinstance(value, str):
        parts = shlex.split(value)
    elif isinstance(value, (list, tuple)):
        parts = [str(p) for p in value]
    else:
        raise ConfigError(f"status_command must be a string or list, got {value!r}")
    if not parts:
        raise ConfigError("status_command must not be empty")
    return parts

def build_config(raw: Dict[str, Any]) -> Config:
    """Validate a merged settings mapping into a Config."""
    url = str(raw.get("database_url") or "").strip()
    if not url:
        raise ConfigError("DATABASE_URL is not set")

    graphite_host = str(raw.get("graphite_host") or "").strip()
    if not graphite_host:
        graphite_host = DEFAULT_GRAPHITE_HOST
        log.info("Using the default GRAPHITE_HOST value: %s", graphite_host)

    stale_source = str(raw.get("stale_source", "local")).strip().lower()
    if stale_source not in STALE_SOURCES:
        raise ConfigError(f"stale_source must be one of {STALE_SOURCES}, got {stale_source!r}")

    window = _as_int("stale_after_minutes", raw.get("stale_after_minutes", 60))
    if window <= 0:
        raise ConfigError("stale_after_minutes must be positive")

    host_label = raw.get("host_label")
    if host_label is None:
        host_label = short_hostname()
    elif str(host_label).strip():
        host_label = short_hostname(str(host_label).strip())

    log_file = raw.get("log_file")
    return Config(
        database_url=normalize_database_url(url),
        graphite_host=graphite_host,
        graphite_port=_as_int("graphite_port", raw.get("graphite_port", 2003)),
        prefix=str(raw.get("prefix", "vlg.cinc")).strip().strip("."),
        host_label=str(host_label).strip(),
        stale_after_minutes=window,
        stale_source=stale_source,
        interval_s=max(MIN_INTERVAL_S, _as_int("interval_s", raw.get("interval_s", 60))),
        status_command=_as_command(raw.get("status_command", DEFAULT_STATUS_COMMAND)),
        dry_run=as_bool(raw.get("dry_run", False)),
        log_level=str(raw.get("log_level", "INFO")).upper(),
        log_file=str(log_file) if log_file else None,
    )

def load_config(path: Optional[str] = None) -> Config:
    """Defaults < YAML file < environment. CLI flags go through Config.with_overrides."""
    raw: Dict[str, Any] = {}
    raw.update(read_config_file(path))
    raw.update(_env_overrides())
    return build_config(raw)
