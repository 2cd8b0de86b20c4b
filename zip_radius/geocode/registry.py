"""Build the ordered geocoder chain from configuration."""

from __future__ import annotations

from zip_radius.common.constants import USER_AGENT
from zip_radius.common.errors import ConfigError
from zip_radius.common.http import HttpClient, RetryConfig, TimeoutConfig
from zip_radius.geocode.arcgis import ArcGisGeocoder
from zip_radius.geocode.base import Geocoder
from zip_radius.geocode.nominatim import NominatimGeocoder

GEOCODER_CLASSES: dict[str, type[Geocoder]] = {
    "arcgis": ArcGisGeocoder,
    "nominatim": NominatimGeocoder,
}


def user_agent_for(contact: str) -> str:
    # Nominatim's usage policy wants a reachable contact in every request.
    return f"{USER_AGENT} (+contact: {contact})"


def build_http_client(geocoders_config: dict, http_config: dict) -> HttpClient:
    return HttpClient(
        timeout=TimeoutConfig(
            connect=float(http_config["connect_timeout"]),
            read=float(http_config["read_timeout"]),
        ),
        retry=RetryConfig(
            max_attempts=int(http_config["max_attempts"]),
            max_wait=float(http_config["max_wait"]),
        ),
        source_rates={
            source["name"]: float(source["rate_per_sec"])
            for source in geocoders_config["sources"]
        },
        user_agent=user_agent_for(geocoders_config["contact"]),
    )


def build_geocoders(geocoders_config: dict, http_client: HttpClient) -> list[Geocoder]:
    """Return enabled geocoders in configured priority order."""
    geocoders: list[Geocoder] = []
    for source in geocoders_config["sources"]:
        if not source["enabled"]:
            continue
        cls = GEOCODER_CLASSES.get(source["kind"])
        if cls is None:
            raise ConfigError(f"Unsupported geocoder kind: {source['kind']}")
        geocoders.append(
            cls(
                source["name"],
                source["endpoint"],
                exact_score=float(source["exact_score"]),
                country=geocoders_config["country"],
                http_client=http_client,
            )
        )
    return geocoders
