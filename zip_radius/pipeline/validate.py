"""Universe artifact validation."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable

from zip_radius.common.constants import UNIVERSE_HEADERS
from zip_radius.common.errors import ContractError, MalformedCoordinate
from zip_radius.common.logging import log_event
from zip_radius.common.models import CodeRecord
from zip_radius.common.zipcode import is_valid_zip_code
from zip_radius.pipeline.coordinates import parse_coordinate

LOGGER = logging.getLogger(__name__)


def validate_universe_records(records: list[CodeRecord]) -> list[CodeRecord]:
    bad_codes = [record.code for record in records if not is_valid_zip_code(record.code)]
    if bad_codes:
        raise ContractError(f"Invalid ZIP codes in universe: {', '.join(sorted(bad_codes)[:10])}")
    dupes = sorted(code for code, count in Counter(r.code for r in records).items() if count > 1)
    if dupes:
        raise ContractError(f"Duplicate ZIP codes in universe: {', '.join(dupes[:10])}")
    return records


def check_universe_count(count: int, expected: dict) -> bool:
    return int(expected["min"]) <= count <= int(expected["max"])


def parse_universe_rows(
    header: list[str],
    rows: Iterable[dict],
    *,
    logger: logging.Logger | None = None,
) -> tuple[list[CodeRecord], dict[str, int]]:
    """Turn universe CSV rows into CodeRecords.

    A wrong header or a duplicate code means the artifact is not the one we
    wrote, and raises ContractError. Individual rows with a malformed code or
    coordinate are rejected and logged; they never reach the prefilter.
    """
    log = logger or LOGGER
    if header != UNIVERSE_HEADERS:
        raise ContractError(f"Universe header mismatch: {header} != {UNIVERSE_HEADERS}")

    rejected = {"invalid_code": 0, "malformed_coordinate": 0}
    records: list[CodeRecord] = []
    for line_number, row in enumerate(rows, start=2):
        code = (row.get("code") or "").strip()
        if not is_valid_zip_code(code):
            rejected["invalid_code"] += 1
            log_event(
                log,
                f"universe line {line_number}: invalid code {code!r}",
                level=logging.WARNING,
                event="UNIVERSE_ROW_REJECTED",
                status="error",
                error_code="INVALID_CODE",
            )
            continue
        try:
            lat, lon = parse_coordinate(row.get("latitude"), row.get("longitude"), context=f"code {code}")
        except MalformedCoordinate as exc:
            rejected["malformed_coordinate"] += 1
            log_event(
                log,
                f"universe line {line_number}: {exc}",
                level=logging.WARNING,
                event="UNIVERSE_ROW_REJECTED",
                status="error",
                error_code=exc.error_code,
            )
            continue
        records.append(CodeRecord(code=code, latitude=lat, longitude=lon))

    records.sort(key=lambda record: record.code)
    return validate_universe_records(records), rejected
