"""
config.py
─────────
Runtime settings loaded from environment variables (+ optional .env).

Every variable is prefixed with TASKREMINDER_.  Bad values fall back to
their defaults instead of failing start-up.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from .timers import MAX_DELAY_MS

ENV_PREFIX = "TASKREMINDER"


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else v.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _log_level(name: str, default: int) -> int:
    level = logging.getLevelName(_env(name, "").upper() or logging.getLevelName(default))
    return level if isinstance(level, int) else default


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    log_dir: Path
    host: str = "127.0.0.1"
    port: int = 8000
    max_delay_ms: int = MAX_DELAY_MS
    desktop_notify: bool = True
    log_level: int = logging.INFO
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


def load_settings(*, dotenv: bool = True) -> Settings:
    if dotenv:
        load_dotenv(override=False)

    data_dir = _env_path(_k("DATA_DIR"), Path.home() / ".taskreminder")
    max_delay = _env_int(_k("MAX_DELAY_MS"), MAX_DELAY_MS)

    return Settings(
        data_dir=data_dir,
        log_dir=_env_path(_k("LOG_DIR"), data_dir / "logs"),
        host=_env(_k("HOST"), "127.0.0.1"),
        port=_env_int(_k("PORT"), 8000),
        max_delay_ms=min(max(1, max_delay), MAX_DELAY_MS),
        desktop_notify=_env_bool(_k("DESKTOP_NOTIFY"), True),
        log_level=_log_level(_k("LOG_LEVEL"), logging.INFO),
        cors_origins=_env_list(_k("CORS_ORIGINS"), ["*"]),
    )


def describe(s: Settings) -> str:
    return (
        f"data_dir={s.data_dir} host={s.host} port={s.port} "
        f"max_delay_ms={s.max_delay_ms} desktop_notify={s.desktop_notify}"
    )
