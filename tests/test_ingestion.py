"""Tests for the validate → store → publish pipeline and the synthetic source."""

from __future__ import annotations

import asyncio
import random

import pytest

from datastore.reading_store import ReadingStore
from services.broadcast import BroadcastHub
from services.generator import FakeSensorGenerator
from services.ingestion import IngestionService
from services.validator import ReadingValidator, SensorBounds, ValidationRejected


def _pipeline(capacity: int = 5) -> tuple[IngestionService, ReadingStore, BroadcastHub]:
    hub = BroadcastHub(buffer_size=10)
    store = ReadingStore(capacity=capacity, hub=hub)
    return IngestionService(ReadingValidator(), store), store, hub


def test_accepted_reading_is_stored_and_published() -> None:
    ingestion, store, hub = _pipeline()
    subscriber = hub.subscribe()

    reading = ingestion.submit(
        {"temperature": 22.0, "humidity": 45.0, "sound": 120.0, "heart_rate": 72.0},
        correlation_id="corr-1",
    )

    assert store.latest() is reading
    assert [message["data"]["id"] for message in subscriber.drain()] == [str(reading.id)]


@pytest.mark.parametrize(
    "field", ["temperature", "humidity", "sound", "heart_rate"]
)
def test_rejected_reading_is_neither_stored_nor_published(field: str) -> None:
    ingestion, store, hub = _pipeline()
    subscriber = hub.subscribe()
    payload = {"temperature": 22.0, "humidity": 45.0, "sound": 120.0, "heart_rate": 72.0}
    payload[field] = -1000.0

    with pytest.raises(ValidationRejected):
        ingestion.submit(payload)

    assert store.latest() is None
    assert store.history() == []
    assert subscriber.drain() == []


def test_generated_payloads_stay_within_default_bounds() -> None:
    generator = FakeSensorGenerator(interval_ms=1000, rng=random.Random(7))
    validator = ReadingValidator(SensorBounds())

    for _ in range(1000):
        validator.validate(generator.next_payload())

    assert generator.ticks == 1000


def test_generator_run_feeds_ingestion_until_cancelled() -> None:
    ingestion, store, _hub = _pipeline(capacity=100)
    generator = FakeSensorGenerator(interval_ms=1, rng=random.Random(1))

    async def scenario() -> None:
        producer = asyncio.create_task(generator.run(ingestion))
        await asyncio.sleep(0.05)
        producer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await producer

    asyncio.run(scenario())

    assert store.total_ingested >= 1
    assert store.total_ingested == generator.ticks


def test_generator_survives_rejections() -> None:
    hub = BroadcastHub()
    store = ReadingStore(capacity=5, hub=hub)
    strict = ReadingValidator(SensorBounds(heart_rate=(0.0, 1.0)))
    ingestion = IngestionService(strict, store)
    generator = FakeSensorGenerator(interval_ms=1, rng=random.Random(3))

    async def scenario() -> None:
        producer = asyncio.create_task(generator.run(ingestion))
        await asyncio.sleep(0.02)
        producer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await producer

    asyncio.run(scenario())

    assert generator.ticks >= 2
    assert store.total_ingested == 0
