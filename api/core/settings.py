"""
Process configuration from environment variables.

A `.env` file in the working directory is loaded once (python-dotenv) so
local runs behave like the container, where the variables come from compose.
Only DATABASE_URL is required; everything else falls back to a default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from dotenv import load_dotenv

DEFAULT_NODES_API_URL = "https://mempool.space/api/v1/lightning/nodes/rankings/connectivity"
DEFAULT_SYNC_INTERVAL_S = 60.0
DEFAULT_SYNC_MAX_BACKOFF_S = 600.0
DEFAULT_FETCH_TIMEOUT_S = 20.0

WRITE_POLICY_INSERT_ONLY = "insert_only"
WRITE_POLICY_UPSERT = "upsert"
WRITE_POLICIES = {WRITE_POLICY_INSERT_ONLY, WRITE_POLICY_UPSERT}

_dotenv_loaded = False


class ConfigError(RuntimeError):
    pass


def _load_dotenv_once() -> None:
    global _dotenv_loaded
    if _dotenv_loaded:
        return None
    load_dotenv()
    _dotenv_loaded = True


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return default


def _sanitize_database_url(url: str) -> str:
    # asyncpg rejects libpq's `sslmode` query parameter.
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    _load_dotenv_once()
    url = os.environ.get("DATABASE_URL", "").strip()
    if not url:
        raise ConfigError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


def write_policy() -> str:
    policy = _env_str("NODE_WRITE_POLICY", WRITE_POLICY_INSERT_ONLY).lower()
    if policy not in WRITE_POLICIES:
        raise ConfigError(
            f"Invalid NODE_WRITE_POLICY '{policy}'. Allowed: {sorted(WRITE_POLICIES)}"
        )
    return policy


@dataclass(frozen=True)
class Settings:
    database_url: str
    nodes_api_url: str
    sync_interval_s: float
    sync_max_backoff_s: float
    fetch_timeout_s: float
    write_policy: str
    export_on_startup: bool
    sync_enabled: bool
    log_level: str


def load_settings() -> Settings:
    """
    Read all settings once. Raises ConfigError if DATABASE_URL is missing
    or a value is unusable.
    """
    _load_dotenv_once()

    interval = _env_float("SYNC_INTERVAL_S", DEFAULT_SYNC_INTERVAL_S)
    if interval <= 0:
        raise ConfigError("Invalid SYNC_INTERVAL_S. It must be > 0.")

    timeout = _env_float("FETCH_TIMEOUT_S", DEFAULT_FETCH_TIMEOUT_S)
    if timeout <= 0:
        raise ConfigError("Invalid FETCH_TIMEOUT_S. It must be > 0.")

    return Settings(
        database_url=database_url(),
        nodes_api_url=_env_str("NODES_API_URL", DEFAULT_NODES_API_URL),
        sync_interval_s=interval,
        sync_max_backoff_s=max(interval, _env_float("SYNC_MAX_BACKOFF_S", DEFAULT_SYNC_MAX_BACKOFF_S)),
        fetch_timeout_s=timeout,
        write_policy=write_policy(),
        export_on_startup=_env_bool("EXPORT_ON_STARTUP", True),
        sync_enabled=_env_bool("SYNC_ENABLED", True),
        log_level=_env_str("LOG_LEVEL", "INFO").upper(),
    )
