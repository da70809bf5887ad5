from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_CONFIG_PATH_ENV = "KEGERATOR_CONFIG_PATH"
_SENSOR_DRIVER_ENV = "KEGERATOR_SENSOR_DRIVER"
_POLL_INTERVAL_ENV = "KEGERATOR_POLL_INTERVAL"
_ATTACH_RETRIES_ENV = "KEGERATOR_ATTACH_RETRIES"
_READ_RETRIES_ENV = "KEGERATOR_READ_RETRIES"
_RETRY_BACKOFF_ENV = "KEGERATOR_RETRY_BACKOFF"
_TEMPERATURE_LIMIT_ENV = "KEGERATOR_TEMPERATURE_LIMIT"
_POUR_LIMIT_ENV = "KEGERATOR_POUR_LIMIT"
_POUR_IDLE_TIMEOUT_ENV = "KEGERATOR_POUR_IDLE_TIMEOUT"
_POUR_HISTORY_ENV = "KEGERATOR_POUR_HISTORY"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    config_path: Optional[str]
    sensor_driver: str
    poll_interval: float
    attach_retries: int
    read_retries: int
    retry_backoff: float
    temperature_limit: float
    pour_limit: int
    pour_idle_timeout: float
    pour_history: Optional[int]
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


def _read_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None:
        return None
    candidate = value.strip()
    if not candidate:
        return None
    try:
        parsed = int(candidate)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


def _read_float(name: str, default: float, allow_zero: bool = False) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if parsed > 0 or (allow_zero and parsed == 0):
        return parsed
    return default


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
        config_path=_read_optional_env(_CONFIG_PATH_ENV, "./kegerator.json"),
        sensor_driver=_read_str_env(_SENSOR_DRIVER_ENV, "mock").lower(),
        poll_interval=_read_float(_POLL_INTERVAL_ENV, 10.0),
        attach_retries=_read_positive_int(_ATTACH_RETRIES_ENV, 4),
        read_retries=_read_positive_int(_READ_RETRIES_ENV, 10),
        retry_backoff=_read_float(_RETRY_BACKOFF_ENV, 0.5, allow_zero=True),
        temperature_limit=_read_float(_TEMPERATURE_LIMIT_ENV, 100.0),
        pour_limit=_read_positive_int(_POUR_LIMIT_ENV, 100),
        pour_idle_timeout=_read_float(_POUR_IDLE_TIMEOUT_ENV, 3.0),
        pour_history=_read_optional_int(_POUR_HISTORY_ENV),
        log_level=_read_log_level("INFO"),
    )
