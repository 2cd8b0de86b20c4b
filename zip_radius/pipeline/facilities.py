"""Facility address resolution with fail-soft semantics."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from zip_radius.common.errors import (
    CollaboratorUnavailable,
    ConfigError,
    ContractError,
    MalformedCoordinate,
    StageError,
    UnresolvedAddress,
)
from zip_radius.common.fs import read_csv, read_json, write_json
from zip_radius.common.http import HttpRequestError
from zip_radius.common.logging import log_event
from zip_radius.common.models import FacilityRecord, UnresolvedFacility
from zip_radius.geocode.base import Geocoder
from zip_radius.pipeline.coordinates import parse_coordinate, safe_float

LOGGER = logging.getLogger(__name__)

ID_COLUMNS = ("facility_id", "name")
NO_MATCH = "NO_MATCH"
LOW_CONFIDENCE = "LOW_CONFIDENCE"
COLLABORATOR_FAILURE = "COLLABORATOR_FAILURE"
MALFORMED_COORDINATE = "MALFORMED_COORDINATE"
# A source that answered says more about the address than one that failed.
REASON_PRECEDENCE = (LOW_CONFIDENCE, MALFORMED_COORDINATE, COLLABORATOR_FAILURE, NO_MATCH)


def load_facility_rows(path: Path) -> list[dict]:
    """Read ``facility_id`` (or ``name``), ``address`` and optional ``radius_miles``."""
    if not path.exists():
        raise ConfigError(f"Missing facility list: {path}")
    header, rows = read_csv(path)
    id_column = next((column for column in ID_COLUMNS if column in header), None)
    if id_column is None or "address" not in header:
        raise ConfigError(f"Facility list needs an id column ({' or '.join(ID_COLUMNS)}) and address: {path}")

    facilities: list[dict] = []
    for row in rows:
        facility_id = (row.get(id_column) or "").strip()
        if not facility_id:
            raise ContractError(f"Facility row without id in {path}")
        radius = None
        raw_radius = (row.get("radius_miles") or "").strip()
        if raw_radius:
            radius = safe_float(raw_radius)
            if radius is None or radius <= 0:
                raise ContractError(f"Invalid radius_miles {raw_radius!r} for facility {facility_id}")
        facilities.append(
            {
                "facility_id": facility_id,
                "address": (row.get("address") or "").strip(),
                "radius_miles": radius,
            }
        )

    ids = [facility["facility_id"] for facility in facilities]
    dupes = sorted({facility_id for facility_id in ids if ids.count(facility_id) > 1})
    if dupes:
        raise ContractError(f"Duplicate facility ids: {', '.join(dupes)}")
    return facilities


def resolve_facility(
    facility_id: str,
    address: str,
    geocoders: Sequence[Geocoder],
    *,
    radius_miles: float | None = None,
) -> FacilityRecord:
    """Geocode one address through the geocoder chain; first exact match wins.

    Raises UnresolvedAddress with the most informative reason when no source
    accepts the address.
    """
    if not address:
        raise UnresolvedAddress(f"Facility {facility_id} has no address", reason=NO_MATCH)

    reasons: list[str] = []
    details: list[str] = []
    for geocoder in geocoders:
        try:
            result = geocoder.geocode_address(address)
        except HttpRequestError as exc:
            reasons.append(COLLABORATOR_FAILURE)
            details.append(f"{geocoder.name}: {exc}")
            continue
        except MalformedCoordinate as exc:
            reasons.append(MALFORMED_COORDINATE)
            details.append(f"{geocoder.name}: {exc}")
            continue

        if geocoder.accepts(result):
            return FacilityRecord(
                facility_id=facility_id,
                address=address,
                latitude=result.latitude,
                longitude=result.longitude,
                source=geocoder.name,
                radius_miles=radius_miles,
            )
        if result is None:
            reasons.append(NO_MATCH)
            details.append(f"{geocoder.name}: no candidates")
        else:
            reasons.append(LOW_CONFIDENCE)
            details.append(f"{geocoder.name}: score {result.confidence_score}, matched={result.matched}")

    reason = next((r for r in REASON_PRECEDENCE if r in reasons), NO_MATCH)
    raise UnresolvedAddress(
        f"Facility {facility_id} did not resolve: {'; '.join(details)}",
        reason=reason,
    )


def resolve_facilities(
    facility_rows: Sequence[dict],
    geocoders: Sequence[Geocoder],
    data_dir: Path,
    run_id: str,
    *,
    resolved_filename: str = "facilities_resolved.json",
    logger: logging.Logger | None = None,
) -> dict:
    log = logger or LOGGER
    resolved: list[FacilityRecord] = []
    unresolved: list[UnresolvedFacility] = []

    for row in facility_rows:
        try:
            resolved.append(
                resolve_facility(
                    row["facility_id"],
                    row["address"],
                    geocoders,
                    radius_miles=row.get("radius_miles"),
                )
            )
        except UnresolvedAddress as exc:
            unresolved.append(
                UnresolvedFacility(
                    facility_id=row["facility_id"],
                    address=row["address"],
                    reason=exc.reason,
                    detail=str(exc),
                )
            )
            log_event(
                log,
                str(exc),
                level=logging.WARNING,
                run_id=run_id,
                stage="resolve-facilities",
                facility_id=row["facility_id"],
                event="FACILITY_UNRESOLVED",
                status="error",
                error_code=exc.reason,
            )

    if unresolved and all(item.reason == COLLABORATOR_FAILURE for item in unresolved) and not resolved:
        raise CollaboratorUnavailable(
            f"Geocoders unreachable for all {len(unresolved)} facilities; aborting facility resolution"
        )

    payload = {
        "run_id": run_id,
        "resolved": [facility.to_dict() for facility in resolved],
        "unresolved": [item.to_dict() for item in unresolved],
    }
    write_json(data_dir / "intermediate" / resolved_filename, payload)
    log_event(
        log,
        f"resolved {len(resolved)} of {len(facility_rows)} facilities",
        run_id=run_id,
        stage="resolve-facilities",
        event="FACILITIES_RESOLVED",
        status="partial" if unresolved else "ok",
        rows_in=len(facility_rows),
        rows_out=len(resolved),
    )
    return payload


def load_resolved_facilities(path: Path) -> list[FacilityRecord]:
    if not path.exists():
        raise StageError(f"Missing resolved facilities: {path}; run resolve-facilities first")
    payload = read_json(path)
    facilities: list[FacilityRecord] = []
    for row in payload.get("resolved", []):
        lat, lon = parse_coordinate(row.get("latitude"), row.get("longitude"), context=f"facility {row.get('facility_id')}")
        facilities.append(
            FacilityRecord(
                facility_id=str(row["facility_id"]),
                address=row.get("address", ""),
                latitude=lat,
                longitude=lon,
                source=row.get("source", ""),
                radius_miles=row.get("radius_miles"),
            )
        )
    return facilities
