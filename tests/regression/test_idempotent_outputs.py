from __future__ import annotations

from pathlib import Path

import pytest

from zip_radius.common.models import CodeRecord, FacilityRecord
from zip_radius.pipeline.aggregate import aggregate_results
from zip_radius.pipeline.export import load_universe, write_results_csv, write_universe_csv
from zip_radius.pipeline.query import run_radius_query

UNIVERSE = [
    CodeRecord("07302", 40.7196, -74.0466),
    CodeRecord("10001", 40.7506, -73.9972),
    CodeRecord("10002", 40.7157, -73.9863),
    CodeRecord("10007", 40.7135, -74.0078),
    CodeRecord("10013", 40.7201, -74.0050),
    CodeRecord("11201", 40.6943, -73.9903),
    CodeRecord("19107", 39.9522, -75.1622),
]
FACILITIES = [
    FacilityRecord("F2", "", 40.7178, -74.0431),
    FacilityRecord("F1", "", 40.7071, -74.0108),
]
QUERY = {
    "radius_miles": 20,
    "margin": {"mode": "derived", "margin_lat": 0.5, "margin_lon": 0.5, "allow_unsafe_margins": False},
    "index": "grid",
    "grid_cell_degrees": 1.0,
    "workers": 2,
}


def _run(tmp_path: Path, name: str) -> bytes:
    universe_path = tmp_path / f"{name}_universe.csv"
    write_universe_csv(universe_path, list(reversed(UNIVERSE)))
    universe = load_universe(universe_path)
    results = aggregate_results(run_radius_query(FACILITIES, universe, QUERY))
    out = tmp_path / f"{name}.csv"
    write_results_csv(out, results)
    return out.read_bytes()


@pytest.mark.regression
def test_same_inputs_give_byte_identical_results(tmp_path: Path):
    first = _run(tmp_path, "first")
    second = _run(tmp_path, "second")

    assert first == second
    lines = first.decode("utf-8").splitlines()
    assert lines[1].startswith("F1,40.7071,-74.0108,10007,")
    assert not any(",19107," in line for line in lines)
    assert sum(1 for line in lines if line.startswith("F1,")) == 6
