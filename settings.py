from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_PATH_ENV = "READINGS_STORE_PATH"
_API_KEY_ENV = "API_KEY"
_DEFAULT_DEVICE_ENV = "DEFAULT_DEVICE_ID"
_RETENTION_ENV = "RETENTION_SECONDS"
_REAPER_INTERVAL_ENV = "REAPER_INTERVAL_SECONDS"
_QUEUE_SIZE_ENV = "SUBSCRIBER_QUEUE_SIZE"
_HOST_ENV = "HOST"
_PORT_ENV = "PORT"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    store_path: Optional[str]
    api_key: Optional[str]
    default_device_id: str
    retention_seconds: int
    reaper_interval_seconds: float
    subscriber_queue_size: int
    host: str
    port: int
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


def _read_positive_float(name: str, default: float) -> float:
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
        store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/readings.json"),
        api_key=_read_optional_env(_API_KEY_ENV, None),
        default_device_id=_read_str_env(_DEFAULT_DEVICE_ENV, "esp32-1"),
        retention_seconds=_read_positive_int(_RETENTION_ENV, 1800),
        reaper_interval_seconds=_read_positive_float(_REAPER_INTERVAL_ENV, 60.0),
        subscriber_queue_size=_read_positive_int(_QUEUE_SIZE_ENV, 100),
        host=_read_str_env(_HOST_ENV, "0.0.0.0"),
        port=_read_positive_int(_PORT_ENV, 3000),
        log_level=_read_log_level("INFO"),
    )
