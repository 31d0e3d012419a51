"""
Configuration.

Module-level constants are the defaults. load_settings() overlays
SCHEDCACHE_* environment variables so deployments and tests can point
the cache at another API or data directory without code changes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_DATA_DIR = PACKAGE_DIR / "data"

API_BASE_URL = "https://api.mindenit.org"
CONNECT_TIMEOUT = 10.0  # seconds
READ_TIMEOUT = 15.0  # seconds
HEALTH_TIMEOUT = 5.0  # seconds

SYNC_WORKERS = 4
LOG_MAX_LINES = 2000
DIFF_DETAIL_LIMIT = 50


@dataclass(frozen=True)
class Settings:
    data_dir: Path = DEFAULT_DATA_DIR
    api_base_url: str = API_BASE_URL
    connect_timeout: float = CONNECT_TIMEOUT
    read_timeout: float = READ_TIMEOUT
    sync_workers: int = SYNC_WORKERS
    log_max_lines: int = LOG_MAX_LINES

    @property
    def cache_path(self) -> Path:
        return self.data_dir / "events_cache.json"

    @property
    def prefs_path(self) -> Path:
        return self.data_dir / "preferences.json"

    @property
    def log_path(self) -> Path:
        return self.data_dir / "sync_log.json"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def load_settings(data_dir: str | Path | None = None, api_base_url: str | None = None) -> Settings:
    """
    Build Settings from defaults, environment and explicit overrides
    (explicit arguments win over environment variables).
    """
    env_dir = os.environ.get("SCHEDCACHE_DATA_DIR", "").strip()
    env_url = os.environ.get("SCHEDCACHE_API_URL", "").strip()

    resolved_dir = Path(data_dir) if data_dir else (Path(env_dir) if env_dir else DEFAULT_DATA_DIR)
    resolved_url = (api_base_url or env_url or API_BASE_URL).rstrip("/")

    return Settings(
        data_dir=resolved_dir,
        api_base_url=resolved_url,
        connect_timeout=_env_float("SCHEDCACHE_CONNECT_TIMEOUT", CONNECT_TIMEOUT),
        read_timeout=_env_float("SCHEDCACHE_READ_TIMEOUT", READ_TIMEOUT),
        sync_workers=_env_int("SCHEDCACHE_SYNC_WORKERS", SYNC_WORKERS),
        log_max_lines=_env_int("SCHEDCACHE_LOG_MAX_LINES", LOG_MAX_LINES),
    )
