from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_NAME_ENV = "SENSOR_STORE_NAME"
_STORE_PATH_ENV = "SENSOR_STORE_PERSISTENCE_PATH"
_ALERT_LOG_NAME_ENV = "ALERT_LOG_NAME"
_ALERT_LOG_PATH_ENV = "ALERT_LOG_PERSISTENCE_PATH"
_HISTORY_LIMIT_ENV = "HISTORY_LIMIT"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    store_name: str
    store_persistence_path: Optional[str]
    alert_log_name: str
    alert_log_persistence_path: Optional[str]
    history_limit: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_name=_read_str_env(_STORE_NAME_ENV, "sensor_data"),
        store_persistence_path=_read_optional_env(_STORE_PATH_ENV, None),
        alert_log_name=_read_str_env(_ALERT_LOG_NAME_ENV, "alerts"),
        alert_log_persistence_path=_read_optional_env(
            _ALERT_LOG_PATH_ENV, "./tmp/alerts.json"
        ),
        history_limit=_read_positive_int(_HISTORY_LIMIT_ENV, 72),
        log_level=_read_log_level("INFO"),
    )
