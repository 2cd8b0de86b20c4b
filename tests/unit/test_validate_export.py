from __future__ import annotations

from pathlib import Path

import pytest

from zip_radius.common.errors import ContractError, StageError
from zip_radius.common.fs import read_csv
from zip_radius.common.models import CodeRecord, ResultRecord
from zip_radius.pipeline.export import load_universe, write_results_csv, write_universe_csv
from zip_radius.pipeline.validate import check_universe_count, parse_universe_rows, validate_universe_records


def test_universe_csv_keeps_leading_zeros_and_four_decimals(tmp_path: Path):
    path = tmp_path / "zip_universe.csv"
    write_universe_csv(
        path,
        [
            CodeRecord("02134", 42.3539, -71.1292, "primary"),
            CodeRecord("00501", 40.8154, -73.0451, "primary"),
        ],
    )

    assert path.read_text(encoding="utf-8").splitlines() == [
        "code,latitude,longitude",
        "00501,40.8154,-73.0451",
        "02134,42.3539,-71.1292",
    ]
    loaded = load_universe(path)
    assert [record.code for record in loaded] == ["00501", "02134"]
    assert loaded[0].latitude == 40.8154


def test_missing_universe_is_a_stage_error(tmp_path: Path):
    with pytest.raises(StageError):
        load_universe(tmp_path / "nope.csv")


def test_header_mismatch_is_a_contract_error():
    with pytest.raises(ContractError):
        parse_universe_rows(["zip", "lat", "lon"], [])


def test_malformed_rows_are_rejected_and_counted():
    rows = [
        {"code": "10007", "latitude": "40.7128", "longitude": "-74.0060"},
        {"code": "1007", "latitude": "40.7", "longitude": "-74.0"},
        {"code": "10008", "latitude": "", "longitude": "-74.0"},
        {"code": "10009", "latitude": "91.0", "longitude": "-74.0"},
        {"code": "10010", "latitude": "nan", "longitude": "-74.0"},
    ]

    records, rejected = parse_universe_rows(["code", "latitude", "longitude"], rows)

    assert [record.code for record in records] == ["10007"]
    assert rejected == {"invalid_code": 1, "malformed_coordinate": 3}


def test_duplicate_codes_are_a_contract_error():
    rows = [
        {"code": "10007", "latitude": "40.7128", "longitude": "-74.0060"},
        {"code": "10007", "latitude": "40.7128", "longitude": "-74.0060"},
    ]
    with pytest.raises(ContractError):
        parse_universe_rows(["code", "latitude", "longitude"], rows)
    with pytest.raises(ContractError):
        validate_universe_records([CodeRecord("ABCDE", 0.0, 0.0)])


def test_universe_count_bounds():
    expected = {"min": 41000, "max": 43000}
    assert check_universe_count(41500, expected)
    assert not check_universe_count(100, expected)


def test_results_csv_layout(tmp_path: Path):
    path = tmp_path / "out.csv"
    write_results_csv(path, [ResultRecord("F1", 40.7071, -74.0108, "07302", 40.7196, -74.0466, 2.0)])

    header, rows = read_csv(path)

    assert header == [
        "facility_id",
        "facility_latitude",
        "facility_longitude",
        "code",
        "code_latitude",
        "code_longitude",
        "distance_miles",
    ]
    assert rows[0]["code"] == "07302"
    assert rows[0]["distance_miles"] == "2.00"
    assert rows[0]["facility_longitude"] == "-74.0108"
