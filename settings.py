from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_NAME_ENV = "REPORT_STORE_NAME"
_STORE_PATH_ENV = "REPORT_STORE_PATH"
_WORKER_COUNT_ENV = "VALIDATOR_WORKER_COUNT"
_QUEUE_SIZE_ENV = "COLLECTOR_QUEUE_SIZE"
_MAX_SKEW_ENV = "MAX_TIMESTAMP_DIFF_NS"
_FAR_DISTANCE_ENV = "PROXIMITY_FAR_DISTANCE_CM"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    store_name: str
    store_persistence_path: Optional[str]
    validator_workers: int
    collector_queue_size: int
    max_timestamp_diff_ns: int
    proximity_far_distance_cm: float
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
        store_name=_read_str_env(_STORE_NAME_ENV, "validation_reports"),
        store_persistence_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/reports.json"),
        validator_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        collector_queue_size=_read_positive_int(_QUEUE_SIZE_ENV, 1024),
        max_timestamp_diff_ns=_read_positive_int(_MAX_SKEW_ENV, 4_000_000),
        proximity_far_distance_cm=_read_positive_float(_FAR_DISTANCE_ENV, 5.0),
        log_level=_read_log_level("INFO"),
    )
