"""OpenStreetMap Nominatim search API."""

from __future__ import annotations

from zip_radius.common.http import HttpRequestError
from zip_radius.common.models import GeocodeResult
from zip_radius.common.zipcode import normalise_zip_code
from zip_radius.geocode.base import Geocoder
from zip_radius.pipeline.coordinates import parse_coordinate

# Nominatim wants ISO 3166-1 alpha-2 codes.
COUNTRY_ALPHA2 = {"USA": "us", "US": "us"}
ADDRESS_LEVEL_TYPES = {"house", "building", "amenity", "healthcare"}


class NominatimGeocoder(Geocoder):
    """Nominatim returns no match score.

    Confidence is therefore derived: ``exact_score`` when the top result
    is the requested thing (same postcode for code lookups, a house or
    building level feature for address lookups), otherwise 0.
    """

    kind = "nominatim"

    @property
    def country_alpha2(self) -> str:
        return COUNTRY_ALPHA2.get(self.country.upper(), self.country.lower())

    def _search(self, params: dict) -> dict | None:
        query = {
            "format": "jsonv2",
            "addressdetails": 1,
            "limit": 1,
            "countrycodes": self.country_alpha2,
        }
        query.update(params)
        payload = self.http_client.get_json(
            self.endpoint,
            source_type=self.name,
            params=query,
            timeout=self.timeout,
        )
        if isinstance(payload, dict) and "error" in payload:
            raise HttpRequestError(f"Nominatim search failed for {self.endpoint}: {payload['error']}")
        if not isinstance(payload, list) or not payload:
            return None
        return payload[0]

    def _in_country(self, address: dict) -> bool:
        return str(address.get("country_code", "")).lower() == self.country_alpha2

    def geocode_postal_code(self, code: str) -> GeocodeResult | None:
        place = self._search({"postalcode": code})
        if place is None:
            return None

        address = place.get("address") or {}
        lat, lon = parse_coordinate(place.get("lat"), place.get("lon"), context=f"{self.name} postal code {code}")
        matched = normalise_zip_code(address.get("postcode")) == code and self._in_country(address)
        return GeocodeResult(
            latitude=lat,
            longitude=lon,
            confidence_score=self.exact_score if matched else 0.0,
            matched=matched,
            source=self.name,
        )

    def geocode_address(self, address: str) -> GeocodeResult | None:
        place = self._search({"q": address})
        if place is None:
            return None

        details = place.get("address") or {}
        lat, lon = parse_coordinate(place.get("lat"), place.get("lon"), context=f"{self.name} address {address!r}")
        level = place.get("addresstype") or place.get("type")
        matched = self._in_country(details) and (level in ADDRESS_LEVEL_TYPES or "house_number" in details)
        return GeocodeResult(
            latitude=lat,
            longitude=lon,
            confidence_score=self.exact_score if matched else 0.0,
            matched=matched,
            source=self.name,
        )
