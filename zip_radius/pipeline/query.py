"""Per-facility radius query: prefilter then refine."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Sequence

from zip_radius.common.logging import log_event
from zip_radius.common.models import CodeRecord, FacilityRecord, ResultRecord
from zip_radius.pipeline.prefilter import Margins, build_prefilter, resolve_margins
from zip_radius.pipeline.refine import refine_candidates

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class FacilityQueryResult:
    facility_id: str
    radius_miles: float
    margins: Margins
    candidate_count: int
    results: list[ResultRecord]
    warnings: list[str] = field(default_factory=list)


def facility_radius(facility: FacilityRecord, default_radius_miles: float) -> float:
    return facility.radius_miles if facility.radius_miles is not None else default_radius_miles


def query_facility(
    facility: FacilityRecord,
    prefilter,
    radius_miles: float,
    margins: Margins,
    warnings: list[str] | None = None,
) -> FacilityQueryResult:
    candidates = prefilter.candidates(facility.latitude, facility.longitude, margins)
    return FacilityQueryResult(
        facility_id=facility.facility_id,
        radius_miles=radius_miles,
        margins=margins,
        candidate_count=len(candidates),
        results=refine_candidates(facility, candidates, radius_miles),
        warnings=list(warnings or []),
    )


def run_radius_query(
    facilities: Sequence[FacilityRecord],
    universe: Sequence[CodeRecord],
    query_config: dict,
    *,
    radius_miles: float | None = None,
    run_id: str | None = None,
    logger: logging.Logger | None = None,
) -> list[FacilityQueryResult]:
    """Run every facility independently and return one result per facility.

    Margins are settled for all facilities before any distance work, so an
    unsafe fixed margin fails the whole query up front.
    """
    log = logger or LOGGER
    default_radius = float(radius_miles if radius_miles is not None else query_config["radius_miles"])

    plans = []
    for facility in facilities:
        radius = facility_radius(facility, default_radius)
        margins, warnings = resolve_margins(
            radius,
            facility.latitude,
            query_config["margin"],
            facility_id=facility.facility_id,
            logger=log,
        )
        plans.append((facility, radius, margins, warnings))

    started = time.monotonic()
    prefilter = build_prefilter(
        universe,
        index=query_config.get("index", "grid"),
        cell_degrees=float(query_config.get("grid_cell_degrees", 1.0)),
    )

    def _run(plan) -> FacilityQueryResult:
        facility, radius, margins, warnings = plan
        return query_facility(facility, prefilter, radius, margins, warnings)

    workers = int(query_config.get("workers", 1))
    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            outcomes = list(executor.map(_run, plans))
    else:
        outcomes = [_run(plan) for plan in plans]

    for outcome in outcomes:
        log_event(
            log,
            f"facility {outcome.facility_id}: {len(outcome.results)} codes within {outcome.radius_miles} miles",
            run_id=run_id,
            stage="query",
            facility_id=outcome.facility_id,
            event="FACILITY_QUERIED",
            status="ok",
            rows_in=outcome.candidate_count,
            rows_out=len(outcome.results),
        )
    log_event(
        log,
        "radius query complete",
        run_id=run_id,
        stage="query",
        event="QUERY_DONE",
        status="ok",
        duration_ms=int((time.monotonic() - started) * 1000),
        rows_in=len(facilities),
        rows_out=sum(len(outcome.results) for outcome in outcomes),
    )
    return outcomes
