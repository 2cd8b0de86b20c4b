"""Universe and result CSV artifacts."""

from __future__ import annotations

import logging
from pathlib import Path

from zip_radius.common.constants import (
    COORDINATE_DECIMALS,
    DISTANCE_DECIMALS,
    RESULT_HEADERS,
    UNIVERSE_HEADERS,
)
from zip_radius.common.errors import StageError
from zip_radius.common.fs import read_csv, write_csv
from zip_radius.common.logging import log_event
from zip_radius.common.models import CodeRecord, ResultRecord
from zip_radius.pipeline.validate import parse_universe_rows


def _coord(value: float) -> str:
    return f"{value:.{COORDINATE_DECIMALS}f}"


def write_universe_csv(path: Path, records: list[CodeRecord]) -> Path:
    rows = [
        {"code": record.code, "latitude": _coord(record.latitude), "longitude": _coord(record.longitude)}
        for record in sorted(records, key=lambda record: record.code)
    ]
    write_csv(path, UNIVERSE_HEADERS, rows)
    return path


def load_universe(path: Path, *, logger: logging.Logger | None = None) -> list[CodeRecord]:
    if not path.exists():
        raise StageError(f"Missing universe artifact: {path}")
    header, rows = read_csv(path)
    records, rejected = parse_universe_rows(header, rows, logger=logger)
    if logger is not None:
        log_event(
            logger,
            f"loaded universe from {path}",
            stage="query",
            event="UNIVERSE_LOADED",
            status="partial" if any(rejected.values()) else "ok",
            rows_in=len(rows),
            rows_out=len(records),
        )
    return records


def _serialize_result(result: ResultRecord) -> dict:
    return {
        "facility_id": result.facility_id,
        "facility_latitude": _coord(result.facility_latitude),
        "facility_longitude": _coord(result.facility_longitude),
        "code": result.code,
        "code_latitude": _coord(result.code_latitude),
        "code_longitude": _coord(result.code_longitude),
        "distance_miles": f"{result.distance_miles:.{DISTANCE_DECIMALS}f}",
    }


def write_results_csv(path: Path, results: list[ResultRecord]) -> Path:
    write_csv(path, RESULT_HEADERS, (_serialize_result(result) for result in results))
    return path
