from __future__ import annotations

import configparser
import os
from pathlib import Path
from typing import Dict, Optional, Tuple

from typing_extensions import Literal

from pydantic import BaseModel

CompletionMode = Literal["atomic", "two_phase"]


class Settings(BaseModel):
    database_url: str = "sqlite+pysqlite:///./wms.db"
    log_level: str = "INFO"
    order_completion_mode: CompletionMode = "atomic"
    default_actor_username: str = "system"


_ENV_OVERRIDES = ("DATABASE_URL", "LOG_LEVEL", "ORDER_COMPLETION_MODE", "DEFAULT_ACTOR_USERNAME")

_cached_settings: Dict[str, Tuple[Settings, float, Tuple[str, ...]]] = {}


def _config_path() -> Path:
    return Path(os.getenv("WMS_CONFIG_PATH", "wms.conf"))


def load_settings() -> Settings:
    """Loads settings from the INI file and applies environment overrides."""
    path = _config_path()
    path_str = str(path)
    try:
        mtime = float(path.stat().st_mtime)
    except OSError:
        mtime = 0.0

    overrides = tuple((os.getenv(name) or "").strip() for name in _ENV_OVERRIDES)
    cached = _cached_settings.get(path_str)
    if cached is not None and cached[1] == mtime and cached[2] == overrides:
        return cached[0]

    parser = configparser.ConfigParser()
    if path.exists():
        parser.read(path, encoding="utf-8")

    def get(section: str, key: str, env: str, default: str) -> str:
        override = (os.getenv(env) or "").strip()
        if override:
            return override
        return (parser.get(section, key, fallback=default) or default).strip()

    mode = get("orders", "completion_mode", "ORDER_COMPLETION_MODE", "atomic").lower()
    if mode not in ("atomic", "two_phase"):
        raise ValueError(f"ORDER_COMPLETION_MODE must be 'atomic' or 'two_phase', got {mode!r}")

    cfg = Settings(
        database_url=get("database", "url", "DATABASE_URL", Settings().database_url),
        log_level=get("logging", "level", "LOG_LEVEL", "INFO").upper(),
        order_completion_mode=mode,
        default_actor_username=get("actors", "default_username", "DEFAULT_ACTOR_USERNAME", "system"),
    )
    _cached_settings[path_str] = (cfg, mtime, overrides)
    return cfg


def reset_settings_cache(path: Optional[str] = None) -> None:
    if path is None:
        _cached_settings.clear()
    else:
        _cached_settings.pop(path, None)
