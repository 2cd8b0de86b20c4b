"""ArcGIS World Geocoding Service (findAddressCandidates)."""

from __future__ import annotations

from zip_radius.common.http import HttpRequestError
from zip_radius.common.models import GeocodeResult
from zip_radius.geocode.base import Geocoder
from zip_radius.pipeline.coordinates import parse_coordinate

POSTAL_ADDR_TYPE = "Postal"
ADDRESS_LEVEL_TYPES = {"PointAddress", "Subaddress", "StreetAddress", "StreetInt", "POI"}


def _first_candidate(payload: dict, url: str) -> dict | None:
    if "error" in payload:
        raise HttpRequestError(f"ArcGIS geocode failed for {url}: {payload['error']}")
    candidates = payload.get("candidates") or []
    if not candidates:
        return None
    # The service orders by score already; keep the first on ties.
    return max(candidates, key=lambda candidate: float(candidate.get("score") or 0))


def _candidate_point(candidate: dict, context: str) -> tuple[float, float]:
    location = candidate.get("location") or {}
    return parse_coordinate(location.get("y"), location.get("x"), context=context)


class ArcGisGeocoder(Geocoder):
    """Scores run 0..100; 100 is an exact match for the requested input."""

    kind = "arcgis"

    def _query(self, params: dict) -> dict:
        query = {
            "f": "json",
            "countryCode": self.country,
            "maxLocations": 1,
            "outFields": "Addr_type,Postal",
        }
        query.update(params)
        return self.http_client.get_json(
            self.endpoint,
            source_type=self.name,
            params=query,
            timeout=self.timeout,
        )

    def geocode_postal_code(self, code: str) -> GeocodeResult | None:
        payload = self._query({"postal": code, "category": "Postal"})
        candidate = _first_candidate(payload, self.endpoint)
        if candidate is None:
            return None

        attributes = candidate.get("attributes") or {}
        lat, lon = _candidate_point(candidate, f"{self.name} postal code {code}")
        matched = (
            attributes.get("Addr_type") == POSTAL_ADDR_TYPE
            and str(attributes.get("Postal", "")).strip() == code
        )
        return GeocodeResult(
            latitude=lat,
            longitude=lon,
            confidence_score=float(candidate.get("score") or 0),
            matched=matched,
            source=self.name,
        )

    def geocode_address(self, address: str) -> GeocodeResult | None:
        payload = self._query({"SingleLine": address})
        candidate = _first_candidate(payload, self.endpoint)
        if candidate is None:
            return None

        attributes = candidate.get("attributes") or {}
        lat, lon = _candidate_point(candidate, f"{self.name} address {address!r}")
        return GeocodeResult(
            latitude=lat,
            longitude=lon,
            confidence_score=float(candidate.get("score") or 0),
            matched=attributes.get("Addr_type") in ADDRESS_LEVEL_TYPES,
            source=self.name,
        )
