from __future__ import annotations
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from app.realtime import router as realtime_router
from datastore.reading_store import build_default_hub, build_default_store
from logging_config import configure_logging
from services.generator import FakeSensorGenerator
from services.ingestion import build_default_ingestion
from services.observations import build_default_encoder, check_observation_table
from settings import SERVICE_VERSION, get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    check_observation_table()
    hub = build_default_hub()
    store = build_default_store()
    ingestion = build_default_ingestion()
    logger.info(
        "Initialized application state with history capacity %d",
        store.capacity,
        extra={"policy": hub.overflow_policy.value},
    )

    producer: asyncio.Task[None] | None = None
    if settings.generator_enabled:
        generator = FakeSensorGenerator(settings.sensor_interval_ms)
        producer = asyncio.create_task(generator.run(ingestion))
    try:
        yield
    finally:
        if producer is not None:
            producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await producer
        hub.close()
        build_default_ingestion.cache_clear()
        build_default_encoder.cache_clear()
        build_default_store.cache_clear()
        build_default_hub.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Stream Monitor",
        description=(
            "Real-time environmental and physiological sensor monitoring with "
            "FHIR R4 observation export."
        ),
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.include_router(router)
    app.include_router(realtime_router)
    return app

app = create_app()
