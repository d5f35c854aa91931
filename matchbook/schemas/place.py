"""Pydantic schemas for the place resolution pipeline."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator

UNKNOWN_PLACE_NAME = "Unknown Place"
ADDRESS_NOT_AVAILABLE = "Address not available"


# --- Inputs ---

class MapReference(BaseModel):
    """Raw text suspected of containing a map link."""

    original_text: str


class ClassifiedLink(BaseModel):
    is_valid: bool
    canonical_url: str | None = None
    is_shortened: bool = False
    original_text: str = ""


# --- URL hints ---

class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def as_query(self) -> str:
        return f"{self.lat},{self.lng}"


class PlaceIdKind(str, Enum):
    OPAQUE = "opaque"
    COORDINATE = "coordinate"


class PlaceIdentifier(BaseModel):
    value: str
    kind: PlaceIdKind

    @property
    def is_opaque(self) -> bool:
        return self.kind == PlaceIdKind.OPAQUE


class ExtractedHints(BaseModel):
    place_id: PlaceIdentifier | None = None
    coordinates: Coordinates | None = None
    coordinate_source: str | None = Field(
        None, description="Tie-break rule that produced the coordinates"
    )
    name_fragment: str | None = None
    address_fragment: str | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.place_id is None
            and self.coordinates is None
            and self.name_fragment is None
        )


# --- Scraped page ---

class ScrapedFields(BaseModel):
    name: str | None = None
    address: str | None = None
    phone: str | None = None
    website: str | None = None
    rating: float | None = None
    rating_count: int | None = None
    opening_hours: str | None = None
    category: str | None = None
    coordinates: Coordinates | None = None
    final_url: str = ""

    @property
    def has_identity(self) -> bool:
        return bool(self.name or self.address)


# --- Output contract ---

class PlaceSource(str, Enum):
    PLACES_DETAILS = "places_details"
    PLACES_SEARCH = "places_search"
    SCRAPER = "scraper"


class NormalizedPlace(BaseModel):
    name: str
    address: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    external_id: str | None = None
    types: list[str] = []
    website: str | None = None
    phone: str | None = None
    rating: float | None = None
    rating_count: int | None = None
    opening_hours: list[str] = []
    is_open: bool | None = None
    maps_url: str | None = None
    source_url: str | None = None
    source: PlaceSource | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _name_placeholder(cls, v):
        if v is None or not str(v).strip():
            return UNKNOWN_PLACE_NAME
        return str(v).strip()

    @field_validator("address", mode="before")
    @classmethod
    def _address_placeholder(cls, v):
        if v is None or not str(v).strip():
            return ADDRESS_NOT_AVAILABLE
        return str(v).strip()

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


# --- Orchestrator trace ---

class StageOutcome(str, Enum):
    SUCCESS = "success"
    SOFT_FAIL = "soft_fail"  # stage ran cleanly but had nothing usable
    HARD_FAIL = "hard_fail"  # stage raised; caught and recorded


class StageResult(BaseModel):
    stage: str
    outcome: StageOutcome
    place: NormalizedPlace | None = None
    detail: str | None = None


class Resolution(BaseModel):
    place: NormalizedPlace
    resolved_url: str
    hints: ExtractedHints
    stages: list[StageResult] = []


# --- Duplicate detection ---

class ExistingRecord(BaseModel):
    id: str
    lat: float | None = None
    lng: float | None = None
    source_url: str | None = None


class DuplicateVerdict(BaseModel):
    is_duplicate: bool
    matched_record_id: str | None = None
    match_kind: Literal["coordinates", "url"] | None = None
    distance_meters: float | None = None


# --- API envelopes ---

class ResolveRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=4096, description="Shared text or map link")


class TextSearchRequest(BaseModel):
    query: str = Field(..., min_length=2, max_length=512)
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)


class ResolveResponse(BaseModel):
    success: bool
    place: NormalizedPlace | None = None
    resolved_url: str | None = None
    stages: list[StageResult] = []
    error: str | None = None
    error_code: str | None = None


class DuplicateCheckRequest(BaseModel):
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)
    url: str | None = None
    records: list[ExistingRecord] = []
    threshold_meters: float | None = Field(None, gt=0)
