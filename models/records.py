"""Domain models shared across services."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4


MEASUREMENT_FIELDS = ("temperature", "humidity", "sound", "heart_rate")


@dataclass(frozen=True, slots=True)
class SensorReading:
    """One timestamped set of sensor measurements, accepted by the validator."""

    temperature: float
    humidity: float
    sound: float
    heart_rate: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    monotonic: float = field(default_factory=time.monotonic)
    id: UUID = field(default_factory=uuid4)
    correlation_id: Optional[str] = None

    def measurements(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in MEASUREMENT_FIELDS}

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready representation used by the HTTP and WebSocket layers."""

        payload: Dict[str, Any] = {
            "id": str(self.id),
            "timestamp": self.timestamp.isoformat(),
            **self.measurements(),
        }
        if self.correlation_id is not None:
            payload["correlation_id"] = self.correlation_id
        return payload


def measurement_field_names() -> tuple[str, ...]:
    """Float-typed fields of ``SensorReading`` that carry a measurement."""

    return tuple(
        item.name
        for item in fields(SensorReading)
        if item.type in ("float", float) and item.name != "monotonic"
    )
