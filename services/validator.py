"""Plausibility checks applied to every raw reading before it enters shared state."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, NoReturn, Optional, Tuple

from models.records import MEASUREMENT_FIELDS, SensorReading
from settings import Settings

logger = logging.getLogger(__name__)

Bound = Tuple[float, float]

_FIELD_LABELS = {
    "temperature": "Temperature",
    "humidity": "Humidity",
    "sound": "Sound level",
    "heart_rate": "Heart rate",
}


@dataclass(frozen=True)
class SensorBounds:
    """Inclusive per-field bounds a reading must fall within."""

    temperature: Bound = (-20.0, 60.0)
    humidity: Bound = (0.0, 100.0)
    sound: Bound = (0.0, 1023.0)
    heart_rate: Bound = (20.0, 250.0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SensorBounds":
        return cls(
            temperature=settings.temperature_bounds,
            humidity=settings.humidity_bounds,
            sound=settings.sound_bounds,
            heart_rate=settings.heart_rate_bounds,
        )

    def for_field(self, name: str) -> Bound:
        return getattr(self, name)


@dataclass(frozen=True)
class Rejection:
    """Why a raw reading was refused."""

    field: str
    value: Any
    bound: Optional[Bound]
    message: str

    def to_dict(self) -> Dict[str, Any]:
        value = self.value
        if isinstance(value, float) and not math.isfinite(value):
            value = str(value)
        return {
            "field": self.field,
            "value": value,
            "bound": list(self.bound) if self.bound is not None else None,
            "message": self.message,
        }


class ValidationRejected(ValueError):
    """Raised when a raw reading fails a plausibility check."""

    def __init__(self, rejection: Rejection) -> None:
        super().__init__(rejection.message)
        self.rejection = rejection


class ReadingValidator:
    """Turns raw payloads into ``SensorReading`` objects or rejects them whole."""

    def __init__(self, bounds: Optional[SensorBounds] = None) -> None:
        self.bounds = bounds or SensorBounds()

    def validate(
        self,
        raw: Mapping[str, Any],
        correlation_id: Optional[str] = None,
    ) -> SensorReading:
        values: Dict[str, float] = {}
        for name in MEASUREMENT_FIELDS:
            values[name] = self._check_field(name, raw.get(name))

        extra: Dict[str, Any] = {}
        timestamp_raw = raw.get("timestamp")
        if timestamp_raw is not None:
            extra["timestamp"] = self._parse_timestamp(timestamp_raw)
        if correlation_id:
            extra["correlation_id"] = correlation_id

        logger.debug("Sensor input validation passed")
        return SensorReading(**values, **extra)

    def _check_field(self, name: str, value: Any) -> float:
        low, high = self.bounds.for_field(name)
        label = _FIELD_LABELS[name]

        # bool is an int subclass but never a measurement
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            self._reject(
                name, value, (low, high), f"{label} is missing or not a number"
            )
        try:
            number = float(value)
        except OverflowError:
            number = math.inf
        if not math.isfinite(number):
            self._reject(name, value, (low, high), f"{label} must be a finite number")
        if number < low or number > high:
            self._reject(
                name,
                number,
                (low, high),
                f"{label} {number:g} out of valid range [{low:g}, {high:g}]",
            )
        return number

    @staticmethod
    def _reject(name: str, value: Any, bound: Optional[Bound], message: str) -> NoReturn:
        rejection = Rejection(field=name, value=value, bound=bound, message=message)
        logger.warning(
            "Sensor input validation failed",
            extra={"field": name, "value": value, "bound": bound},
        )
        raise ValidationRejected(rejection)

    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime:
        if isinstance(value, datetime):
            parsed = value
        else:
            candidate = str(value).strip()
            if candidate.endswith("Z"):
                candidate = candidate[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(candidate)
            except ValueError:
                cls._reject("timestamp", value, None, "Timestamp is not valid ISO 8601")

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
