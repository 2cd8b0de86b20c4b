"""Exact geodesic distance refinement of prefiltered candidates."""

from __future__ import annotations

from typing import Iterable

from pyproj import Geod

from zip_radius.common.constants import BOUNDARY_TOLERANCE_MILES, DISTANCE_DECIMALS, METERS_PER_MILE
from zip_radius.common.models import CodeRecord, FacilityRecord, ResultRecord

WGS84_GEOD = Geod(ellps="WGS84")


def geodesic_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Shortest distance on the WGS84 ellipsoid, in miles."""
    _forward_azimuth, _back_azimuth, meters = WGS84_GEOD.inv(lon1, lat1, lon2, lat2)
    return meters / METERS_PER_MILE


def within_radius(distance_miles: float, radius_miles: float) -> bool:
    return distance_miles <= radius_miles + BOUNDARY_TOLERANCE_MILES


def refine_candidates(
    facility: FacilityRecord,
    candidates: Iterable[CodeRecord],
    radius_miles: float,
) -> list[ResultRecord]:
    measured = (
        (candidate, geodesic_miles(facility.latitude, facility.longitude, candidate.latitude, candidate.longitude))
        for candidate in candidates
    )
    return [
        ResultRecord(
            facility_id=facility.facility_id,
            facility_latitude=facility.latitude,
            facility_longitude=facility.longitude,
            code=candidate.code,
            code_latitude=candidate.latitude,
            code_longitude=candidate.longitude,
            distance_miles=round(distance, DISTANCE_DECIMALS),
        )
        for candidate, distance in measured
        if within_radius(distance, radius_miles)
    ]
