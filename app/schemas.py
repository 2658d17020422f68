"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from models.records import SensorReading


class ReadingOut(BaseModel):
    """Sensor reading as exposed over HTTP."""

    id: UUID
    timestamp: datetime
    temperature: float = Field(..., description="Temperature in degrees Celsius.")
    humidity: float = Field(..., description="Relative humidity in percent.")
    sound: float = Field(..., description="Ambient sound level.")
    heart_rate: float = Field(..., description="Heart rate in beats per minute.")
    correlation_id: Optional[str] = None

    @classmethod
    def from_reading(cls, reading: SensorReading) -> "ReadingOut":
        return cls(
            id=reading.id,
            timestamp=reading.timestamp,
            temperature=reading.temperature,
            humidity=reading.humidity,
            sound=reading.sound,
            heart_rate=reading.heart_rate,
            correlation_id=reading.correlation_id,
        )


class IngestResponse(BaseModel):
    """Response payload after a reading is accepted."""

    success: bool = True
    reading_id: UUID
    correlation_id: str


class HistoryResponse(BaseModel):
    """Retained readings, oldest first."""

    data: List[ReadingOut] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    capacity: int = Field(..., ge=1)


class HealthCheck(BaseModel):
    status: str
    version: str
    timestamp: datetime
    uptime_seconds: int = Field(..., ge=0)
    last_reading: Optional[datetime] = None
    total_readings: int = Field(..., ge=0)
    subscribers: int = Field(..., ge=0)
