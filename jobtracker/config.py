"""
Tracker configuration from environment variables (and an optional .env).
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_API_URL = "http://localhost:8000/api"
DEFAULT_CACHE_PATH = "data/tracker_cache.json"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class TrackerConfig:
    api_url: str = DEFAULT_API_URL
    api_token: Optional[str] = None
    sync_with_server: bool = True
    cache_enabled: bool = True
    cache_path: Path = Path(DEFAULT_CACHE_PATH)
    sync_interval: float = 60.0   # seconds; 0 disables the timer
    request_timeout: float = 15.0
    log_level: str = "INFO"
    log_dir: Optional[Path] = Path("logs")


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {raw!r}")


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> TrackerConfig:
    """
    Build a TrackerConfig from JOBTRACKER_* variables.

    Args:
        env: Mapping to read from (default: os.environ)

    Raises:
        ValueError: a boolean or numeric variable is malformed
    """
    env = os.environ if env is None else env

    log_dir_raw = env.get("JOBTRACKER_LOG_DIR")
    if log_dir_raw is None:
        log_dir: Optional[Path] = Path("logs")
    else:
        log_dir = Path(log_dir_raw) if log_dir_raw.strip() else None

    return TrackerConfig(
        api_url=env.get("JOBTRACKER_API_URL") or DEFAULT_API_URL,
        api_token=env.get("JOBTRACKER_API_TOKEN") or None,
        sync_with_server=_get_bool(env, "JOBTRACKER_SYNC_WITH_SERVER", True),
        cache_enabled=_get_bool(env, "JOBTRACKER_CACHE_ENABLED", True),
        cache_path=Path(env.get("JOBTRACKER_CACHE_PATH") or DEFAULT_CACHE_PATH),
        sync_interval=_get_float(env, "JOBTRACKER_SYNC_INTERVAL", 60.0),
        request_timeout=_get_float(env, "JOBTRACKER_REQUEST_TIMEOUT", 15.0),
        log_level=(env.get("JOBTRACKER_LOG_LEVEL") or "INFO").upper(),
        log_dir=log_dir,
    )
