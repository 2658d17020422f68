"""Synthetic periodic sensor source used when no hardware is attached."""

from __future__ import annotations

import asyncio
import logging
import math
import random
from typing import Dict, Optional

from services.ingestion import IngestionService
from services.validator import ValidationRejected

logger = logging.getLogger(__name__)


class FakeSensorGenerator:
    """Produces drifting, noisy DHT11/sound/MAX30100-like readings on a fixed period."""

    def __init__(
        self,
        interval_ms: int,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.interval = interval_ms / 1000.0
        self.base_temperature = 22.0
        self.base_humidity = 50.0
        self.base_sound = 150.0
        self.base_heart_rate = 70.0
        self.drift = 0.0
        self.ticks = 0
        self._rng = rng or random.Random()

    def next_payload(self) -> Dict[str, float]:
        rng = self._rng
        self.ticks += 1
        self.drift += 0.01
        if self.drift > math.pi * 2:
            self.drift = 0.0

        temp_drift = math.sin(self.drift * 0.5) * 3.0
        temperature = _clamp(self.base_temperature + temp_drift + rng.gauss(0.0, 0.5), 0.0, 50.0)
        # humidity moves against temperature
        humidity = _clamp(self.base_humidity - temp_drift * 2.0 + rng.gauss(0.0, 2.0), 20.0, 90.0)
        spike = rng.uniform(200.0, 500.0) if rng.random() < 0.05 else 0.0
        sound = _clamp(self.base_sound + rng.gauss(0.0, 30.0) + spike, 0.0, 1023.0)
        heart_rate = _clamp(
            self.base_heart_rate + math.sin(self.drift * 2.0) * 10.0 + rng.gauss(0.0, 3.0),
            50.0,
            120.0,
        )
        return {
            "temperature": round(temperature, 1),
            "humidity": round(humidity, 1),
            "sound": float(round(sound)),
            "heart_rate": float(round(heart_rate)),
        }

    async def run(self, ingestion: IngestionService) -> None:
        """Feed readings into ``ingestion`` until cancelled."""
        logger.info("Starting fake sensor data generation loop")
        while True:
            payload = self.next_payload()
            try:
                ingestion.submit(payload)
            except ValidationRejected as exc:
                logger.warning(
                    "Generated reading rejected",
                    extra={"field": exc.rejection.field, "reason": str(exc)},
                )
            await asyncio.sleep(self.interval)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
