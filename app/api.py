"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse

from app.schemas import HealthCheck, HistoryResponse, IngestResponse, ReadingOut
from datastore.reading_store import ReadingStore, build_default_hub, build_default_store
from models.fhir import to_fhir_json
from models.records import SensorReading
from services.broadcast import BroadcastHub
from services.ingestion import IngestionService, build_default_ingestion
from services.observations import ObservationEncoder, build_default_encoder, resolve_field
from services.validator import ValidationRejected
from settings import SERVICE_VERSION

FHIR_MEDIA_TYPE = "application/fhir+json"
NO_READINGS = "No sensor readings available"

router = APIRouter()


def get_store() -> ReadingStore:
    return build_default_store()


def get_hub() -> BroadcastHub:
    return build_default_hub()


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def get_encoder() -> ObservationEncoder:
    return build_default_encoder()


def _require_latest(store: ReadingStore) -> SensorReading:
    reading = store.latest()
    if reading is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NO_READINGS)
    return reading


@router.get(
    "/api/health",
    response_model=HealthCheck,
    summary="Health check endpoint.",
)
async def health_check(
    store: ReadingStore = Depends(get_store),
    hub: BroadcastHub = Depends(get_hub),
) -> HealthCheck:
    return HealthCheck(
        status="healthy",
        version=SERVICE_VERSION,
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=store.uptime_seconds(),
        last_reading=store.last_reading_time(),
        total_readings=store.total_ingested,
        subscribers=hub.subscriber_count,
    )


@router.post(
    "/api/sensor/ingest",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestResponse,
    summary="Validate and ingest one sensor reading.",
)
async def ingest_sensor_data(
    payload: Dict[str, Any] = Body(..., description="Temperature, humidity, sound and heart_rate."),
    x_correlation_id: Optional[str] = Header(None),
    ingestion: IngestionService = Depends(get_ingestion),
) -> IngestResponse:
    correlation_id = x_correlation_id or str(uuid4())
    try:
        reading = ingestion.submit(payload, correlation_id=correlation_id)
    except ValidationRejected as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.rejection.to_dict(),
        ) from exc
    return IngestResponse(reading_id=reading.id, correlation_id=correlation_id)


@router.get(
    "/api/sensor/latest",
    response_model=ReadingOut,
    summary="Most recent accepted reading.",
)
async def get_latest_reading(store: ReadingStore = Depends(get_store)) -> ReadingOut:
    return ReadingOut.from_reading(_require_latest(store))


@router.get(
    "/api/sensor/history",
    response_model=HistoryResponse,
    summary="Retained readings, oldest first.",
)
async def get_reading_history(
    limit: Optional[int] = Query(None, ge=1, description="Only the most recent N readings."),
    store: ReadingStore = Depends(get_store),
) -> HistoryResponse:
    readings = store.history(limit=limit)
    return HistoryResponse(
        data=[ReadingOut.from_reading(reading) for reading in readings],
        total=len(readings),
        capacity=store.capacity,
    )


@router.get(
    "/api/fhir/Observation/latest",
    summary="FHIR bundle for the latest reading.",
)
async def get_fhir_latest(
    store: ReadingStore = Depends(get_store),
    encoder: ObservationEncoder = Depends(get_encoder),
) -> JSONResponse:
    bundle = encoder.encode_bundle([_require_latest(store)])
    return JSONResponse(content=to_fhir_json(bundle), media_type=FHIR_MEDIA_TYPE)


@router.get(
    "/api/fhir/Observation/bundle",
    summary="FHIR bundle over the most recent readings.",
)
async def get_fhir_bundle(
    count: int = Query(10, ge=1, description="Number of recent readings (capped at 100)."),
    store: ReadingStore = Depends(get_store),
    encoder: ObservationEncoder = Depends(get_encoder),
) -> JSONResponse:
    readings = store.history(limit=min(count, 100))
    if not readings:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NO_READINGS)
    bundle = encoder.encode_bundle(readings)
    return JSONResponse(content=to_fhir_json(bundle), media_type=FHIR_MEDIA_TYPE)


@router.get(
    "/api/fhir/Observation/{observation_type}/latest",
    summary="Single FHIR observation for one measurement of the latest reading.",
)
async def get_fhir_observation_by_type(
    observation_type: str,
    store: ReadingStore = Depends(get_store),
    encoder: ObservationEncoder = Depends(get_encoder),
) -> JSONResponse:
    try:
        field = resolve_field(observation_type)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.args[0],
        ) from exc
    observation = encoder.encode_observation(_require_latest(store), field)
    return JSONResponse(content=to_fhir_json(observation), media_type=FHIR_MEDIA_TYPE)


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /api/health for service status."}
