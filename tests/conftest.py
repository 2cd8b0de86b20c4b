from __future__ import annotations

import threading

import pytest

from zip_radius.common.http import RetryableHttpError
from zip_radius.common.models import GeocodeResult
from zip_radius.geocode.base import Geocoder


class FakeGeocoder(Geocoder):
    """Answers from in-memory tables instead of a web service.

    ``codes`` and ``addresses`` map a query to ``(lat, lon, score)``; a
    missing key means the service returned no candidate. Keys in ``fail``
    raise as if the service stayed down through every retry.
    """

    kind = "fake"

    def __init__(self, name, *, codes=None, addresses=None, fail=(), fail_all=False, exact_score=100):
        super().__init__(name, f"https://{name}.invalid", exact_score=exact_score, country="USA", http_client=None)
        self.codes = dict(codes or {})
        self.addresses = dict(addresses or {})
        self.fail = set(fail)
        self.fail_all = fail_all
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def _answer(self, table: dict, key: str) -> GeocodeResult | None:
        with self._lock:
            self.calls.append(key)
        if self.fail_all or key in self.fail:
            raise RetryableHttpError(f"{self.name} unavailable for {key}")
        hit = table.get(key)
        if hit is None:
            return None
        lat, lon, score = hit
        return GeocodeResult(latitude=lat, longitude=lon, confidence_score=score, matched=True, source=self.name)

    def geocode_postal_code(self, code):
        return self._answer(self.codes, code)

    def geocode_address(self, address):
        return self._answer(self.addresses, address)


@pytest.fixture
def fake_geocoder():
    return FakeGeocoder
