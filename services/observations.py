"""Conversion of sensor readings into FHIR R4 Observation resources.

Mappings:

- temperature: LOINC 8310-5 (Body temperature)
- heart_rate: LOINC 8867-4 (Heart rate)
- humidity: ESMS-ENV-001, custom environmental code (no LOINC equivalent)
- sound: ESMS-ENV-002, custom acoustic code (no LOINC equivalent)

Adding a sensor type means adding one row to ``OBSERVATION_TABLE``.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import NAMESPACE_URL, uuid5

from models.fhir import (
    Annotation,
    Bundle,
    BundleEntry,
    CodeableConcept,
    Coding,
    Meta,
    Observation,
    Quantity,
    Reference,
    ReferenceRange,
)
from models.records import SensorReading, measurement_field_names
from settings import get_settings

LOINC_SYSTEM = "http://loinc.org"
ENVIRONMENTAL_SYSTEM = "http://esms.local/fhir/CodeSystem/environmental"
UCUM_SYSTEM = "http://unitsofmeasure.org"
CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/observation-category"
DEFAULT_PATIENT_REFERENCE = "Patient/esms-monitor-subject"

DISCLAIMER = (
    "This observation is from the Environmental Stress Monitoring System. "
    "It identifies environmental and physiological conditions that correlate "
    "with stress and discomfort. It does NOT perform diagnosis and is intended "
    "as an early-warning monitoring tool."
)


@dataclass(frozen=True)
class ObservationMapping:
    code: str
    system: str
    display: str
    unit_code: str
    unit_display: str
    category: str
    device: str
    device_display: str
    reference_low: Optional[float]
    reference_high: Optional[float]
    reference_text: str


OBSERVATION_TABLE: Dict[str, ObservationMapping] = {
    "temperature": ObservationMapping(
        code="8310-5",
        system=LOINC_SYSTEM,
        display="Body temperature",
        unit_code="Cel",
        unit_display="°C",
        category="vital-signs",
        device="Device/esms-sensor-temperature",
        device_display="DHT11 Temperature and Humidity Sensor",
        reference_low=18.0,
        reference_high=26.0,
        reference_text="Comfortable room temperature range",
    ),
    "humidity": ObservationMapping(
        code="ESMS-ENV-001",
        system=ENVIRONMENTAL_SYSTEM,
        display="Environmental humidity",
        unit_code="%",
        unit_display="%",
        category="survey",
        device="Device/esms-sensor-humidity",
        device_display="DHT11 Temperature and Humidity Sensor",
        reference_low=30.0,
        reference_high=60.0,
        reference_text="Comfortable humidity range",
    ),
    "sound": ObservationMapping(
        code="ESMS-ENV-002",
        system=ENVIRONMENTAL_SYSTEM,
        display="Ambient sound level",
        unit_code="1",
        unit_display="units",
        category="survey",
        device="Device/esms-sensor-soundlevel",
        device_display="Sound Level Sensor Module",
        reference_low=None,
        reference_high=400.0,
        reference_text="Comfortable ambient noise level",
    ),
    "heart_rate": ObservationMapping(
        code="8867-4",
        system=LOINC_SYSTEM,
        display="Heart rate",
        unit_code="/min",
        unit_display="beats/minute",
        category="vital-signs",
        device="Device/esms-sensor-heartrate",
        device_display="MAX30100 Pulse Oximeter and Heart Rate Sensor",
        reference_low=60.0,
        reference_high=100.0,
        reference_text="Normal resting heart rate range",
    ),
}

_FIELD_ALIASES = {
    "temperature": "temperature",
    "humidity": "humidity",
    "sound": "sound",
    "soundlevel": "sound",
    "heartrate": "heart_rate",
    "heart_rate": "heart_rate",
    "hr": "heart_rate",
}


def check_observation_table(
    table: Optional[Dict[str, ObservationMapping]] = None,
) -> None:
    """Fail fast when the table and ``SensorReading`` disagree on measurement fields."""
    rows = OBSERVATION_TABLE if table is None else table
    expected = set(measurement_field_names())
    missing = sorted(expected - rows.keys())
    unknown = sorted(rows.keys() - expected)
    if missing or unknown:
        raise RuntimeError(
            f"Observation table mismatch: missing={missing or '[]'} unknown={unknown or '[]'}"
        )


def resolve_field(name: str) -> str:
    """Map a user-facing observation type name to its table key."""
    key = _FIELD_ALIASES.get(name.strip().lower())
    if key is None:
        valid = ", ".join(sorted(_FIELD_ALIASES))
        raise KeyError(f"Invalid observation type: {name}. Valid types: {valid}")
    return key


def _quantity(row: ObservationMapping, value: float) -> Quantity:
    return Quantity(
        value=value, unit=row.unit_display, system=UCUM_SYSTEM, code=row.unit_code
    )


def _reference_range(row: ObservationMapping) -> ReferenceRange:
    return ReferenceRange(
        low=_quantity(row, row.reference_low) if row.reference_low is not None else None,
        high=_quantity(row, row.reference_high) if row.reference_high is not None else None,
        text=row.reference_text,
    )


class ObservationEncoder:
    """Deterministic reading → FHIR mapping driven by ``OBSERVATION_TABLE``."""

    def __init__(
        self,
        patient_reference: str = DEFAULT_PATIENT_REFERENCE,
        table: Optional[Dict[str, ObservationMapping]] = None,
    ) -> None:
        self.patient_reference = patient_reference
        self.table = OBSERVATION_TABLE if table is None else table
        check_observation_table(self.table)

    def encode_observation(self, reading: SensorReading, field: str) -> Observation:
        row = self.table[field]
        effective = reading.timestamp.isoformat()
        return Observation(
            id=f"{reading.id}_{field.replace('_', '')}",
            meta=Meta(last_updated=effective),
            category=[
                CodeableConcept(
                    coding=[
                        Coding(system=CATEGORY_SYSTEM, code=row.category, display=row.category)
                    ]
                )
            ],
            code=CodeableConcept(
                coding=[Coding(system=row.system, code=row.code, display=row.display)],
                text=row.display,
            ),
            subject=Reference(
                reference=self.patient_reference, display="ESMS Monitoring Subject"
            ),
            effective_date_time=effective,
            issued=effective,
            value_quantity=_quantity(row, getattr(reading, field)),
            reference_range=[_reference_range(row)],
            device=Reference(reference=row.device, display=row.device_display),
            note=[Annotation(text=DISCLAIMER, time=effective)],
        )

    def encode(self, reading: SensorReading) -> List[Observation]:
        return [self.encode_observation(reading, field) for field in self.table]

    def encode_bundle(self, readings: Iterable[SensorReading]) -> Bundle:
        ordered: Tuple[SensorReading, ...] = tuple(readings)
        entries = [
            BundleEntry(full_url=f"urn:uuid:{observation.id}", resource=observation)
            for reading in ordered
            for observation in self.encode(reading)
        ]
        bundle_key = ",".join(str(reading.id) for reading in ordered)
        return Bundle(
            id=str(uuid5(NAMESPACE_URL, f"bundle:{bundle_key}")),
            timestamp=ordered[-1].timestamp.isoformat() if ordered else None,
            total=len(entries),
            entry=entries,
        )


@lru_cache
def build_default_encoder() -> ObservationEncoder:
    return ObservationEncoder(patient_reference=get_settings().patient_reference)
