"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    confidence_score: float
    matched: bool
    source: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CodeRecord:
    code: str
    latitude: float
    longitude: float
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FacilityRecord:
    facility_id: str
    address: str
    latitude: float
    longitude: float
    source: str = ""
    radius_miles: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UnresolvedFacility:
    facility_id: str
    address: str
    reason: str
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ResultRecord:
    facility_id: str
    facility_latitude: float
    facility_longitude: float
    code: str
    code_latitude: float
    code_longitude: float
    distance_miles: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
