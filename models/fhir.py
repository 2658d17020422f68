"""Pydantic models for the subset of FHIR R4 resources the service emits."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class FhirModel(BaseModel):
    """Base model serializing to FHIR's camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Coding(FhirModel):
    system: str
    code: str
    display: Optional[str] = None


class CodeableConcept(FhirModel):
    coding: List[Coding]
    text: Optional[str] = None


class Reference(FhirModel):
    reference: str
    display: Optional[str] = None


class Quantity(FhirModel):
    value: float
    unit: str
    system: str
    code: str


class ReferenceRange(FhirModel):
    low: Optional[Quantity] = None
    high: Optional[Quantity] = None
    text: Optional[str] = None


class Annotation(FhirModel):
    text: str
    time: str


class Meta(FhirModel):
    version_id: str = "1"
    last_updated: str
    profile: List[str] = Field(
        default_factory=lambda: ["http://hl7.org/fhir/StructureDefinition/Observation"]
    )


class Observation(FhirModel):
    """One coded measurement taken from a sensor reading."""

    resource_type: Literal["Observation"] = "Observation"
    id: str
    meta: Meta
    status: str = "final"
    category: List[CodeableConcept]
    code: CodeableConcept
    subject: Reference
    effective_date_time: str
    issued: str
    value_quantity: Quantity
    reference_range: Optional[List[ReferenceRange]] = None
    device: Optional[Reference] = None
    note: Optional[List[Annotation]] = None


class BundleEntry(FhirModel):
    full_url: str
    resource: Observation


class Bundle(FhirModel):
    """Ordered ``collection`` bundle of observations."""

    resource_type: Literal["Bundle"] = "Bundle"
    id: str
    type: str = "collection"
    timestamp: Optional[str] = None
    total: int = Field(..., ge=0)
    entry: List[BundleEntry] = Field(default_factory=list)


def to_fhir_json(resource: FhirModel) -> dict:
    return resource.model_dump(mode="json", by_alias=True, exclude_none=True)
