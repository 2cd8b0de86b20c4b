from __future__ import annotations

from pathlib import Path

import pytest

from zip_radius.common.errors import CollaboratorUnavailable
from zip_radius.common.fs import read_csv, read_json, write_json
from zip_radius.common.zipcode import format_zip_code
from zip_radius.pipeline.universe import build_universe

# Every third number is a real code in this toy universe.
CODES = {format_zip_code(n): (40.0 + n / 100, -75.0 - n / 100, 100) for n in range(0, 31, 3)}


def _config(**overrides):
    cfg = {
        "filename": "zip_universe.csv",
        "code_range": {"start": 0, "stop": 30},
        "checkpoint_every": 10,
        "workers": 2,
        "max_consecutive_failures": 5,
        "expected_count": {"min": 41000, "max": 43000},
        "query_all_sources": False,
    }
    cfg.update(overrides)
    return cfg


@pytest.mark.integration
def test_build_writes_sorted_universe_and_report(fake_geocoder, tmp_path: Path):
    geocoder = fake_geocoder("primary", codes=CODES)

    payload = build_universe([geocoder], _config(), tmp_path, "run-1")

    header, rows = read_csv(tmp_path / "out" / "zip_universe.csv")
    assert header == ["code", "latitude", "longitude"]
    assert [row["code"] for row in rows] == sorted(CODES)
    assert rows[0] == {"code": "00000", "latitude": "40.0000", "longitude": "-75.0000"}
    assert payload["record_count"] == len(CODES)
    assert payload["records_by_source"] == {"primary": len(CODES)}
    assert payload["warnings"] == []
    assert len(geocoder.calls) == 31
    report = read_json(tmp_path / "out" / "reports" / "universe_report.json")
    assert report["merge_policy"] == "first_accepted_source_wins"
    assert not (tmp_path / "state" / "universe_checkpoint.json").exists()


@pytest.mark.integration
def test_fallback_fills_codes_primary_misses(fake_geocoder, tmp_path: Path):
    primary = fake_geocoder("primary", codes={k: v for k, v in CODES.items() if k != "00009"})
    fallback = fake_geocoder("fallback", codes={"00009": (41.0, -76.0, 100), "00010": (41.1, -76.1, 100)})

    payload = build_universe([primary, fallback], _config(), tmp_path, "run-1")

    assert payload["record_count"] == len(CODES) + 1
    assert payload["records_by_source"] == {"fallback": 2, "primary": len(CODES) - 1}


@pytest.mark.integration
def test_systemic_failure_aborts_and_resume_skips_done_chunks(fake_geocoder, tmp_path: Path):
    flaky = fake_geocoder("primary", codes=CODES, fail={format_zip_code(n) for n in range(20, 31)})

    with pytest.raises(CollaboratorUnavailable):
        build_universe([flaky], _config(), tmp_path, "run-1")

    checkpoint = read_json(tmp_path / "state" / "universe_checkpoint.json")
    assert checkpoint["next_number"] == 20
    assert [row["code"] for row in checkpoint["records"]] == ["00000", "00003", "00006", "00009", "00012", "00015", "00018"]
    assert not (tmp_path / "out" / "zip_universe.csv").exists()

    healthy = fake_geocoder("primary", codes=CODES)
    payload = build_universe([healthy], _config(), tmp_path, "run-2")

    assert healthy.calls and min(healthy.calls) == "00020"
    assert sorted(healthy.calls) == [format_zip_code(n) for n in range(20, 31)]
    assert payload["record_count"] == len(CODES)


@pytest.mark.integration
def test_scattered_failures_are_skipped_and_reported(fake_geocoder, tmp_path: Path):
    geocoder = fake_geocoder("primary", codes=CODES, fail={"00003", "00017"})

    payload = build_universe([geocoder], _config(), tmp_path, "run-1")

    assert payload["failed_codes"] == ["00003", "00017"]
    assert "CODES_SKIPPED_AFTER_RETRIES" in payload["warnings"]
    assert payload["record_count"] == len(CODES) - 1


@pytest.mark.integration
def test_no_resume_ignores_checkpoint(fake_geocoder, tmp_path: Path):
    flaky = fake_geocoder("primary", codes=CODES, fail={format_zip_code(n) for n in range(20, 31)})
    with pytest.raises(CollaboratorUnavailable):
        build_universe([flaky], _config(), tmp_path, "run-1")

    healthy = fake_geocoder("primary", codes=CODES)
    build_universe([healthy], _config(), tmp_path, "run-2", resume=False)

    assert len(healthy.calls) == 31


@pytest.mark.integration
def test_checkpoint_for_other_range_is_ignored(fake_geocoder, tmp_path: Path):
    flaky = fake_geocoder("primary", codes=CODES, fail={format_zip_code(n) for n in range(20, 31)})
    with pytest.raises(CollaboratorUnavailable):
        build_universe([flaky], _config(), tmp_path, "run-1")

    healthy = fake_geocoder("primary", codes=CODES)
    build_universe([healthy], _config(code_range={"start": 0, "stop": 25}), tmp_path, "run-2")

    assert len(healthy.calls) == 26


@pytest.mark.integration
def test_query_all_sources_reports_conflicts(fake_geocoder, tmp_path: Path):
    primary = fake_geocoder("primary", codes=CODES)
    other = fake_geocoder("other", codes={"00003": (45.0, -80.0, 100), "00006": CODES["00006"]})

    payload = build_universe([primary, other], _config(query_all_sources=True), tmp_path, "run-1")

    assert payload["conflicts"] == [{"code": "00003", "kept_source": "primary", "accepted_by": ["primary", "other"]}]
    assert payload["records_by_source"] == {"primary": len(CODES)}


@pytest.mark.integration
def test_resume_from_checkpoint_after_last_chunk_writes_universe(fake_geocoder, tmp_path: Path):
    # The process died after the final chunk was checkpointed but before the CSV was written.
    write_json(
        tmp_path / "state" / "universe_checkpoint.json",
        {
            "signature": {
                "code_range": {"start": 0, "stop": 99999},
                "sources": ["primary"],
                "query_all_sources": False,
            },
            "next_number": 100000,
            "records": [
                {"code": "00501", "latitude": 40.8154, "longitude": -73.0451, "source": "primary"},
                {"code": "99950", "latitude": 55.5424, "longitude": -131.4321, "source": "primary"},
            ],
            "failed_codes": [],
            "conflicts": [],
        },
    )
    geocoder = fake_geocoder("primary")

    payload = build_universe([geocoder], _config(code_range={"start": 0, "stop": 99999}), tmp_path, "run-2")

    assert geocoder.calls == []
    assert payload["record_count"] == 2
    assert payload["warnings"] == ["UNIVERSE_COUNT_OUT_OF_RANGE"]
    _header, rows = read_csv(tmp_path / "out" / "zip_universe.csv")
    assert [row["code"] for row in rows] == ["00501", "99950"]
    assert not (tmp_path / "state" / "universe_checkpoint.json").exists()
