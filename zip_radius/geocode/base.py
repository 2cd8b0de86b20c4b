"""Common interface for geocoding collaborators."""

from __future__ import annotations

from zip_radius.common.http import HttpClient, TimeoutConfig
from zip_radius.common.models import GeocodeResult


class Geocoder:
    """One geocoding source.

    Subclasses turn a ZIP code or a free-form address into a
    :class:`GeocodeResult`, or ``None`` when the service has no candidate at
    all. Transport failures surface as ``HttpRequestError`` after the client
    has exhausted its retries; callers decide whether to skip or abort.

    What "exact" means is source specific, so acceptance is decided here
    rather than by callers: a result is accepted only when the source flags
    it as matched and its confidence reaches ``exact_score``.
    """

    kind = "base"

    def __init__(
        self,
        name: str,
        endpoint: str,
        *,
        exact_score: float,
        country: str,
        http_client: HttpClient,
        timeout: TimeoutConfig | None = None,
    ) -> None:
        self.name = name
        self.endpoint = endpoint
        self.exact_score = float(exact_score)
        self.country = country
        self.http_client = http_client
        self.timeout = timeout

    def geocode_postal_code(self, code: str) -> GeocodeResult | None:
        raise NotImplementedError

    def geocode_address(self, address: str) -> GeocodeResult | None:
        raise NotImplementedError

    def accepts(self, result: GeocodeResult | None) -> bool:
        if result is None:
            return False
        return bool(result.matched) and result.confidence_score >= self.exact_score

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
