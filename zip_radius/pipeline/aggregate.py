"""Merge independent per-facility results into one table."""

from __future__ import annotations

from collections import Counter
from itertools import chain
from typing import Sequence

from zip_radius.common.errors import ContractError
from zip_radius.common.models import ResultRecord
from zip_radius.pipeline.query import FacilityQueryResult


def aggregate_results(facility_results: Sequence[FacilityQueryResult]) -> list[ResultRecord]:
    merged = list(chain.from_iterable(outcome.results for outcome in facility_results))
    keys = Counter((result.facility_id, result.code) for result in merged)
    dupes = sorted(key for key, count in keys.items() if count > 1)
    if dupes:
        sample = ", ".join(f"{facility_id}/{code}" for facility_id, code in dupes[:10])
        raise ContractError(f"Duplicate (facility_id, code) result rows: {sample}")
    return sorted(merged, key=lambda result: (result.facility_id, result.distance_miles, result.code))


def count_by_facility(facility_results: Sequence[FacilityQueryResult]) -> dict[str, int]:
    return {outcome.facility_id: len(outcome.results) for outcome in sorted(facility_results, key=lambda o: o.facility_id)}


def match_count_warnings(counts: dict[str, int], max_expected_matches: int) -> dict[str, list[str]]:
    """Flag implausible per-facility counts, usually a sign of misconfiguration."""
    warnings: dict[str, list[str]] = {}
    for facility_id, count in counts.items():
        if count == 0:
            warnings[facility_id] = ["ZERO_MATCHES"]
        elif count > max_expected_matches:
            warnings[facility_id] = ["MATCHES_ABOVE_EXPECTED"]
    return warnings
