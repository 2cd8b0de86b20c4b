"""Bounding-box candidate prefilter.

A facility's candidates are the universe records inside an open rectangle
``|dlat| < margin_lat and |dlon| < margin_lon``. The rectangle must contain
the whole radius circle, otherwise the refiner silently loses true matches.

Derived margins (the default) guarantee that on the WGS84 ellipsoid:

* ``margin_lat`` divides the radius by the shortest meridian degree, which is
  the one at the equator. No point within the radius can be further away in
  latitude.
* ``margin_lon`` divides the radius by the length of a parallel degree at the
  most poleward latitude the circle can reach. Parallel degrees shrink with
  ``cos(latitude)``, so this is the widest longitude span any point within
  the radius can have. When the circle reaches a pole every longitude is a
  candidate.

Longitude wrap-around at the antimeridian is not handled.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Sequence

from zip_radius.common.constants import METERS_PER_MILE
from zip_radius.common.errors import ConfigError
from zip_radius.common.logging import log_event
from zip_radius.common.models import CodeRecord

LOGGER = logging.getLogger(__name__)

WGS84_A = 6378137.0
WGS84_F = 1 / 298.257223563
WGS84_E2 = WGS84_F * (2 - WGS84_F)
# Float slack so a point exactly at the bound stays inside the open box.
MARGIN_PAD_DEGREES = 1e-7
FULL_LONGITUDE_SPAN = 360.0


@dataclass(frozen=True)
class Margins:
    lat: float
    lon: float

    def covers(self, other: "Margins") -> bool:
        return self.lat >= other.lat and self.lon >= other.lon


def meridian_degree_miles(latitude: float) -> float:
    phi = math.radians(latitude)
    radius = WGS84_A * (1 - WGS84_E2) / (1 - WGS84_E2 * math.sin(phi) ** 2) ** 1.5
    return radius * math.pi / 180 / METERS_PER_MILE


def parallel_degree_miles(latitude: float) -> float:
    phi = math.radians(latitude)
    radius = WGS84_A * math.cos(phi) / math.sqrt(1 - WGS84_E2 * math.sin(phi) ** 2)
    return radius * math.pi / 180 / METERS_PER_MILE


MIN_MERIDIAN_DEGREE_MILES = meridian_degree_miles(0.0)


def derive_margins(radius_miles: float, latitude: float) -> Margins:
    margin_lat = radius_miles / MIN_MERIDIAN_DEGREE_MILES + MARGIN_PAD_DEGREES
    reach = abs(latitude) + margin_lat
    if reach >= 90:
        return Margins(lat=margin_lat, lon=FULL_LONGITUDE_SPAN)
    margin_lon = radius_miles / parallel_degree_miles(reach) + MARGIN_PAD_DEGREES
    return Margins(lat=margin_lat, lon=min(margin_lon, FULL_LONGITUDE_SPAN))


def resolve_margins(
    radius_miles: float,
    latitude: float,
    margin_config: dict,
    *,
    facility_id: str = "",
    logger: logging.Logger | None = None,
) -> tuple[Margins, list[str]]:
    """Pick the margins for one facility.

    Fixed margins are checked against the derived safe margins. An unsafe
    fixed margin is a ConfigError unless ``allow_unsafe_margins`` is set, in
    which case the facility carries a ``MARGIN_UNSAFE`` warning.
    """
    safe = derive_margins(radius_miles, latitude)
    if margin_config["mode"] == "derived":
        return safe, []

    fixed = Margins(lat=float(margin_config["margin_lat"]), lon=float(margin_config["margin_lon"]))
    if fixed.covers(safe):
        return fixed, []

    message = (
        f"fixed margins ({fixed.lat}, {fixed.lon}) smaller than safe margins "
        f"({safe.lat:.4f}, {safe.lon:.4f}) for facility {facility_id} at latitude {latitude}"
    )
    if not margin_config.get("allow_unsafe_margins", False):
        raise ConfigError(message)
    log_event(
        logger or LOGGER,
        message,
        level=logging.WARNING,
        stage="query",
        facility_id=facility_id,
        event="MARGIN_UNSAFE",
        status="warning",
    )
    return fixed, ["MARGIN_UNSAFE"]


def in_box(record: CodeRecord, latitude: float, longitude: float, margins: Margins) -> bool:
    return abs(record.latitude - latitude) < margins.lat and abs(record.longitude - longitude) < margins.lon


class ScanPrefilter:
    """Reference path: test every universe record."""

    def __init__(self, universe: Sequence[CodeRecord]) -> None:
        self.universe = universe

    def candidates(self, latitude: float, longitude: float, margins: Margins) -> list[CodeRecord]:
        return [record for record in self.universe if in_box(record, latitude, longitude, margins)]


class GridIndex:
    """Records bucketed into square cells of ``cell_degrees``.

    A query visits only the cells overlapping the box and applies the same
    strict predicate as the scan, so it returns exactly the same candidates.
    """

    def __init__(self, universe: Sequence[CodeRecord], cell_degrees: float = 1.0) -> None:
        self.cell_degrees = float(cell_degrees)
        self.buckets: dict[tuple[int, int], list[CodeRecord]] = defaultdict(list)
        for record in universe:
            self.buckets[self._cell(record.latitude, record.longitude)].append(record)
        self._order = {record.code: idx for idx, record in enumerate(universe)}

    def _index(self, value: float) -> int:
        return math.floor(value / self.cell_degrees)

    def _cell(self, latitude: float, longitude: float) -> tuple[int, int]:
        return self._index(latitude), self._index(longitude)

    def candidates(self, latitude: float, longitude: float, margins: Margins) -> list[CodeRecord]:
        lat_cells = range(
            self._index(max(latitude - margins.lat, -90.0)),
            self._index(min(latitude + margins.lat, 90.0)) + 1,
        )
        lon_cells = range(
            self._index(max(longitude - margins.lon, -180.0)),
            self._index(min(longitude + margins.lon, 180.0)) + 1,
        )
        found = [
            record
            for i in lat_cells
            for j in lon_cells
            for record in self.buckets.get((i, j), ())
            if in_box(record, latitude, longitude, margins)
        ]
        # Same order as a scan over the universe.
        found.sort(key=lambda record: self._order[record.code])
        return found


def build_prefilter(universe: Sequence[CodeRecord], index: str = "grid", cell_degrees: float = 1.0):
    if index == "scan":
        return ScanPrefilter(universe)
    if index == "grid":
        return GridIndex(universe, cell_degrees=cell_degrees)
    raise ConfigError(f"Unsupported prefilter index: {index}")
