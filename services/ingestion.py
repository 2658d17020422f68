"""Single entry point that gates raw readings before they reach shared state."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Mapping, Optional

from datastore.reading_store import ReadingStore, build_default_store
from models.records import SensorReading
from services.validator import ReadingValidator, SensorBounds
from settings import get_settings

logger = logging.getLogger(__name__)


class IngestionService:
    """Validates raw payloads and stores (and so publishes) the accepted ones."""

    def __init__(self, validator: ReadingValidator, store: ReadingStore) -> None:
        self.validator = validator
        self.store = store

    def submit(
        self,
        raw: Mapping[str, Any],
        correlation_id: Optional[str] = None,
    ) -> SensorReading:
        """Validate and ingest ``raw``; ``ValidationRejected`` propagates to the caller."""
        reading = self.validator.validate(raw, correlation_id=correlation_id)
        self.store.ingest(reading)
        logger.info(
            "Sensor data ingested",
            extra={"reading_id": reading.id, "correlation_id": correlation_id},
        )
        return reading


@lru_cache
def build_default_ingestion() -> IngestionService:
    """Factory that wires the validator to the default store."""
    validator = ReadingValidator(SensorBounds.from_settings(get_settings()))
    return IngestionService(validator=validator, store=build_default_store())
