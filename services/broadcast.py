"""Fan-out of accepted readings to live subscribers."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from threading import Lock
from typing import Any, Dict, List, Optional
from uuid import uuid4

from models.records import SensorReading

logger = logging.getLogger(__name__)

Message = Dict[str, Any]


class MessageKind(str, Enum):
    """Discriminator carried in the ``type`` key of every outbound message."""

    sensor_update = "SensorUpdate"
    connected = "Connected"
    error = "Error"
    ping = "Ping"
    pong = "Pong"


class OverflowPolicy(str, Enum):
    """What to do when a subscriber's outbound buffer is full."""

    drop_oldest = "drop_oldest"
    disconnect = "disconnect"


def build_message(kind: MessageKind, data: Any = None) -> Message:
    message: Message = {"type": kind.value}
    if data is not None:
        message["data"] = data
    return message


class Subscriber:
    """Handle for one live consumer; yields messages until closed."""

    def __init__(self, subscriber_id: str, buffer_size: int) -> None:
        self.id = subscriber_id
        self.dropped = 0
        self._queue: asyncio.Queue[Optional[Message]] = asyncio.Queue(maxsize=buffer_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, message: Message, policy: OverflowPolicy) -> bool:
        """Buffer ``message`` without blocking; ``False`` means the subscriber must go."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            if policy is OverflowPolicy.disconnect:
                return False
        self._queue.get_nowait()
        self._queue.put_nowait(message)
        self.dropped += 1
        return True

    async def receive(self) -> Optional[Message]:
        """Next buffered message, or ``None`` once the subscriber is closed."""
        if self._closed and self._queue.empty():
            return None
        message = await self._queue.get()
        return message

    def receive_nowait(self) -> Optional[Message]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def drain(self) -> List[Message]:
        """Return every buffered message in delivery order."""
        messages: List[Message] = []
        while True:
            message = self.receive_nowait()
            if message is None:
                return messages
            messages.append(message)

    def __aiter__(self) -> "Subscriber":
        return self

    async def __anext__(self) -> Message:
        message = await self.receive()
        if message is None:
            raise StopAsyncIteration
        return message

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake a pending receive(); an overflowing queue is discarded first.
        while True:
            try:
                self._queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()


class BroadcastHub:
    """Owns the subscriber set and pushes every published reading to each member.

    ``publish`` never awaits: each subscriber has its own bounded queue, so a
    slow consumer only affects itself. Call it from the event loop thread
    that the subscribers' consumers run on.
    """

    def __init__(
        self,
        buffer_size: int = 64,
        overflow_policy: OverflowPolicy = OverflowPolicy.drop_oldest,
    ) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self.buffer_size = buffer_size
        self.overflow_policy = OverflowPolicy(overflow_policy)
        self._subscribers: Dict[str, Subscriber] = {}
        self._lock = Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscriber_ids(self) -> List[str]:
        with self._lock:
            return list(self._subscribers)

    def subscribe(self) -> Subscriber:
        subscriber = Subscriber(str(uuid4()), self.buffer_size)
        with self._lock:
            self._subscribers[subscriber.id] = subscriber
            count = len(self._subscribers)
        logger.info(
            "Subscriber connected",
            extra={"client_id": subscriber.id, "subscriber_count": count},
        )
        return subscriber

    def unsubscribe(self, subscriber_id: str, reason: Optional[str] = None) -> bool:
        with self._lock:
            subscriber = self._subscribers.pop(subscriber_id, None)
            count = len(self._subscribers)
        if subscriber is None:
            return False
        subscriber.close()
        logger.info(
            "Subscriber disconnected",
            extra={
                "client_id": subscriber_id,
                "subscriber_count": count,
                "reason": reason,
            },
        )
        return True

    def publish(self, reading: SensorReading) -> int:
        """Offer ``reading`` to every current subscriber; returns how many accepted it."""
        message = build_message(MessageKind.sensor_update, reading.to_payload())
        with self._lock:
            targets = list(self._subscribers.values())

        delivered = 0
        for subscriber in targets:
            if subscriber.closed:
                self.unsubscribe(subscriber.id, reason="closed")
                continue
            if subscriber.offer(message, self.overflow_policy):
                delivered += 1
                continue
            logger.warning(
                "Subscriber outbound buffer overflowed",
                extra={
                    "client_id": subscriber.id,
                    "reading_id": reading.id,
                    "policy": self.overflow_policy.value,
                },
            )
            self.unsubscribe(subscriber.id, reason="overflow")
        return delivered

    def close(self) -> None:
        for subscriber_id in self.subscriber_ids():
            self.unsubscribe(subscriber_id, reason="shutdown")
