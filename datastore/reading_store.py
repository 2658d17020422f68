from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock
from typing import Deque, List, Optional

from models.records import SensorReading
from services.broadcast import BroadcastHub, OverflowPolicy
from settings import get_settings

logger = logging.getLogger(__name__)


class ReadingStore:
    """Latest reading plus a bounded FIFO window of recent readings."""

    def __init__(self, capacity: int, hub: Optional[BroadcastHub] = None) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.hub = hub
        self.started_at = datetime.now(timezone.utc)
        self._history: Deque[SensorReading] = deque(maxlen=capacity)
        self._latest: Optional[SensorReading] = None
        self._total = 0
        self._lock = Lock()

    def ingest(self, reading: SensorReading) -> None:
        """Store an already-validated reading and hand it to the hub.

        Publishing happens inside the critical section so subscribers see
        readings in exactly the order they were appended.
        """
        with self._lock:
            self._latest = reading
            self._history.append(reading)
            self._total += 1
            if self.hub is not None:
                self.hub.publish(reading)
        logger.debug("Stored sensor reading", extra={"reading_id": reading.id})

    def latest(self) -> Optional[SensorReading]:
        with self._lock:
            return self._latest

    def history(self, limit: Optional[int] = None) -> List[SensorReading]:
        """Snapshot of the window, oldest first; ``limit`` keeps the newest entries."""

        with self._lock:
            items = list(self._history)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    @property
    def total_ingested(self) -> int:
        with self._lock:
            return self._total

    def last_reading_time(self) -> Optional[datetime]:
        latest = self.latest()
        return latest.timestamp if latest is not None else None

    def uptime_seconds(self) -> int:
        return int((datetime.now(timezone.utc) - self.started_at).total_seconds())


@lru_cache
def build_default_hub() -> BroadcastHub:
    settings = get_settings()
    return BroadcastHub(
        buffer_size=settings.subscriber_buffer_size,
        overflow_policy=OverflowPolicy(settings.overflow_policy),
    )


@lru_cache
def build_default_store(capacity: Optional[int] = None) -> ReadingStore:
    settings = get_settings()
    window = settings.history_capacity if capacity is None else capacity
    return ReadingStore(capacity=window, hub=build_default_hub())
