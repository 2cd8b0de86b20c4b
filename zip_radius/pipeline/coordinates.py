"""Coordinate parsing, range validation, and rounding."""

from __future__ import annotations

from typing import Any

from zip_radius.common.constants import COORDINATE_DECIMALS
from zip_radius.common.errors import MalformedCoordinate

# Two records closer than this, per axis, are the same 4-decimal centroid.
COORDINATE_EPSILON = 10 ** -COORDINATE_DECIMALS


def safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if parsed != parsed or parsed in (float("inf"), float("-inf")):
        return None
    return parsed


def valid_lat_lon(lat: float | None, lon: float | None) -> bool:
    if lat is None or lon is None:
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def round_coordinate(value: float) -> float:
    return round(value, COORDINATE_DECIMALS)


def parse_coordinate(raw_lat: Any, raw_lon: Any, *, context: str = "") -> tuple[float, float]:
    """Return a validated, rounded ``(lat, lon)`` pair.

    Raises MalformedCoordinate when either value is missing, not numeric, or
    outside the WGS84 range; such values never reach distance computation.
    """
    lat = safe_float(raw_lat)
    lon = safe_float(raw_lon)
    if not valid_lat_lon(lat, lon):
        where = f" for {context}" if context else ""
        raise MalformedCoordinate(f"Malformed coordinate{where}: lat={raw_lat!r} lon={raw_lon!r}")
    return round_coordinate(lat), round_coordinate(lon)


def coordinates_differ(a: tuple[float, float], b: tuple[float, float]) -> bool:
    return abs(a[0] - b[0]) > COORDINATE_EPSILON / 2 or abs(a[1] - b[1]) > COORDINATE_EPSILON / 2
