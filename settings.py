from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple


_HISTORY_CAPACITY_ENV = "HISTORY_CAPACITY"
_BUFFER_SIZE_ENV = "SUBSCRIBER_BUFFER_SIZE"
_OVERFLOW_POLICY_ENV = "SUBSCRIBER_OVERFLOW_POLICY"
_INTERVAL_ENV = "SENSOR_INTERVAL_MS"
_GENERATOR_ENV = "SENSOR_GENERATOR_ENABLED"
_PATIENT_REFERENCE_ENV = "FHIR_PATIENT_REFERENCE"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_OVERFLOW_POLICIES = ("drop_oldest", "disconnect")

SERVICE_VERSION = "0.1.0"


@dataclass(frozen=True)
class Settings:
    history_capacity: int
    subscriber_buffer_size: int
    overflow_policy: str
    sensor_interval_ms: int
    generator_enabled: bool
    patient_reference: str
    temperature_bounds: Tuple[float, float]
    humidity_bounds: Tuple[float, float]
    sound_bounds: Tuple[float, float]
    heart_rate_bounds: Tuple[float, float]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


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


def _read_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        return float(candidate)
    except ValueError:
        return default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in {"1", "true", "yes", "on"}:
        return True
    if candidate in {"0", "false", "no", "off"}:
        return False
    return default


def _read_bounds(prefix: str, default: Tuple[float, float]) -> Tuple[float, float]:
    low = _read_float(f"{prefix}_MIN", default[0])
    high = _read_float(f"{prefix}_MAX", default[1])
    if low > high:
        return default
    return (low, high)


def _read_overflow_policy(default: str) -> str:
    candidate = _read_str_env(_OVERFLOW_POLICY_ENV, default).lower()
    return candidate if candidate in _OVERFLOW_POLICIES else default


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
        history_capacity=_read_positive_int(_HISTORY_CAPACITY_ENV, 3600),
        subscriber_buffer_size=_read_positive_int(_BUFFER_SIZE_ENV, 64),
        overflow_policy=_read_overflow_policy("drop_oldest"),
        sensor_interval_ms=_read_positive_int(_INTERVAL_ENV, 1000),
        generator_enabled=_read_bool(_GENERATOR_ENV, True),
        patient_reference=_read_str_env(
            _PATIENT_REFERENCE_ENV, "Patient/esms-monitor-subject"
        ),
        temperature_bounds=_read_bounds("TEMPERATURE", (-20.0, 60.0)),
        humidity_bounds=_read_bounds("HUMIDITY", (0.0, 100.0)),
        sound_bounds=_read_bounds("SOUND", (0.0, 1023.0)),
        heart_rate_bounds=_read_bounds("HEART_RATE", (20.0, 250.0)),
        log_level=_read_log_level("INFO"),
    )
