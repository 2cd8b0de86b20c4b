"""ZIP code universe build: enumerate, validate against geocoders, persist.

The build is long (one request per candidate code, at least, against rate
limited services), so progress is checkpointed every chunk and a re-run
resumes from the last checkpoint. Codes with no exact match are expected
(most five digit strings are not ZIP codes) and are dropped quietly.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from zip_radius.common.constants import ZIP_CODE_MAX, ZIP_CODE_MIN
from zip_radius.common.errors import CollaboratorUnavailable, MalformedCoordinate
from zip_radius.common.fs import read_json, write_json
from zip_radius.common.http import HttpRequestError
from zip_radius.common.logging import log_event
from zip_radius.common.models import CodeRecord, GeocodeResult
from zip_radius.common.time_utils import utc_timestamp_iso
from zip_radius.common.zipcode import enumerate_zip_codes, format_zip_code
from zip_radius.geocode.base import Geocoder
from zip_radius.pipeline.coordinates import coordinates_differ
from zip_radius.pipeline.export import write_universe_csv
from zip_radius.pipeline.reports import write_universe_report
from zip_radius.pipeline.validate import check_universe_count, validate_universe_records

LOGGER = logging.getLogger(__name__)
MERGE_POLICY = "first_accepted_source_wins"


@dataclass(frozen=True)
class SourceOutcome:
    source: str
    result: GeocodeResult | None
    accepted: bool
    failed: bool = False
    error_code: str | None = None


@dataclass(frozen=True)
class CodeResolution:
    code: str
    record: CodeRecord | None
    outcomes: tuple[SourceOutcome, ...] = ()
    conflict: bool = False

    @property
    def failed(self) -> bool:
        # A code is only a failure when nobody accepted it and some source
        # could not answer; a plain rejection is an expected non-code.
        return self.record is None and any(outcome.failed for outcome in self.outcomes)


@dataclass
class BuildState:
    next_number: int
    records: dict[str, CodeRecord] = field(default_factory=dict)
    failed_codes: list[str] = field(default_factory=list)
    conflicts: list[dict] = field(default_factory=list)


def select_code_record(code: str, outcomes: Sequence[SourceOutcome]) -> CodeRecord | None:
    """Apply the pinned merge policy: the first accepting source, in priority order, wins."""
    for outcome in outcomes:
        if outcome.accepted and outcome.result is not None:
            return CodeRecord(
                code=code,
                latitude=outcome.result.latitude,
                longitude=outcome.result.longitude,
                source=outcome.source,
            )
    return None


def _has_conflict(outcomes: Sequence[SourceOutcome]) -> bool:
    points = [
        (outcome.result.latitude, outcome.result.longitude)
        for outcome in outcomes
        if outcome.accepted and outcome.result is not None
    ]
    return any(coordinates_differ(points[0], point) for point in points[1:])


def resolve_code(
    code: str,
    geocoders: Sequence[Geocoder],
    *,
    query_all_sources: bool = False,
    logger: logging.Logger | None = None,
) -> CodeResolution:
    log = logger or LOGGER
    outcomes: list[SourceOutcome] = []
    for geocoder in geocoders:
        try:
            result = geocoder.geocode_postal_code(code)
        except HttpRequestError as exc:
            log_event(
                log,
                f"geocoder failed for code {code}: {exc}",
                level=logging.WARNING,
                stage="build-universe",
                source=geocoder.name,
                event="GEOCODE_FAIL",
                status="error",
                error_code=exc.error_code,
            )
            outcomes.append(SourceOutcome(geocoder.name, None, False, failed=True, error_code=exc.error_code))
            continue
        except MalformedCoordinate as exc:
            log_event(
                log,
                str(exc),
                level=logging.WARNING,
                stage="build-universe",
                source=geocoder.name,
                event="COORDINATE_REJECTED",
                status="error",
                error_code=exc.error_code,
            )
            outcomes.append(SourceOutcome(geocoder.name, None, False, error_code=exc.error_code))
            continue

        accepted = geocoder.accepts(result)
        outcomes.append(SourceOutcome(geocoder.name, result, accepted))
        if accepted and not query_all_sources:
            break

    record = select_code_record(code, outcomes)
    if record is None:
        log.debug("no exact match for code %s", code)
    return CodeResolution(
        code=code,
        record=record,
        outcomes=tuple(outcomes),
        conflict=_has_conflict(outcomes),
    )


def _checkpoint_path(data_dir: Path) -> Path:
    return data_dir / "state" / "universe_checkpoint.json"


def _checkpoint_signature(start: int, stop: int, geocoders: Sequence[Geocoder], query_all_sources: bool) -> dict:
    return {
        "code_range": {"start": start, "stop": stop},
        "sources": [geocoder.name for geocoder in geocoders],
        "query_all_sources": query_all_sources,
    }


def _load_checkpoint(path: Path, signature: dict, start: int, log: logging.Logger) -> BuildState:
    fresh = BuildState(next_number=start)
    if not path.exists():
        return fresh
    payload = read_json(path)
    if payload.get("signature") != signature:
        log_event(
            log,
            "ignoring checkpoint written for a different code range or source list",
            level=logging.WARNING,
            stage="build-universe",
            event="CHECKPOINT_MISMATCH",
            status="warning",
        )
        return fresh

    records = {
        row["code"]: CodeRecord(
            code=row["code"],
            latitude=float(row["latitude"]),
            longitude=float(row["longitude"]),
            source=row.get("source", ""),
        )
        for row in payload.get("records", [])
    }
    state = BuildState(
        next_number=int(payload["next_number"]),
        records=records,
        failed_codes=list(payload.get("failed_codes", [])),
        conflicts=list(payload.get("conflicts", [])),
    )
    if state.next_number > signature["code_range"]["stop"]:
        position = "end of range, all codes scanned"
    else:
        position = format_zip_code(state.next_number)
    log_event(
        log,
        f"resuming universe build at {position}",
        stage="build-universe",
        event="CHECKPOINT_RESUME",
        status="ok",
        rows_in=len(records),
    )
    return state


def _write_checkpoint(path: Path, signature: dict, state: BuildState) -> None:
    write_json(
        path,
        {
            "signature": signature,
            "next_number": state.next_number,
            "updated_at": utc_timestamp_iso(),
            "records": [state.records[code].to_dict() for code in sorted(state.records)],
            "failed_codes": sorted(state.failed_codes),
            "conflicts": state.conflicts,
        },
    )


def _chunks(start: int, stop: int, size: int) -> Iterable[range]:
    for chunk_start in range(start, stop + 1, size):
        yield range(chunk_start, min(chunk_start + size, stop + 1))


def _track_consecutive_failures(
    resolutions: Sequence[CodeResolution],
    streaks: dict[str, int],
    limit: int,
) -> None:
    for resolution in resolutions:
        for outcome in resolution.outcomes:
            streaks[outcome.source] = streaks.get(outcome.source, 0) + 1 if outcome.failed else 0
            if streaks[outcome.source] >= limit:
                raise CollaboratorUnavailable(
                    f"Geocoder {outcome.source} failed {streaks[outcome.source]} consecutive codes "
                    f"(last {resolution.code}); aborting universe build"
                )


def build_universe(
    geocoders: Sequence[Geocoder],
    universe_config: dict,
    data_dir: Path,
    run_id: str,
    *,
    resume: bool = True,
    logger: logging.Logger | None = None,
) -> dict:
    log = logger or LOGGER
    start = int(universe_config["code_range"]["start"])
    stop = int(universe_config["code_range"]["stop"])
    chunk_size = int(universe_config["checkpoint_every"])
    workers = int(universe_config["workers"])
    failure_limit = int(universe_config["max_consecutive_failures"])
    query_all_sources = bool(universe_config.get("query_all_sources", False))

    checkpoint_path = _checkpoint_path(data_dir)
    signature = _checkpoint_signature(start, stop, geocoders, query_all_sources)
    if resume:
        state = _load_checkpoint(checkpoint_path, signature, start, log)
    else:
        state = BuildState(next_number=start)

    def _resolve(code: str) -> CodeResolution:
        return resolve_code(
            code,
            geocoders,
            query_all_sources=query_all_sources,
            logger=log,
        )

    streaks: dict[str, int] = {}
    with ThreadPoolExecutor(max_workers=workers) as executor:
        for chunk in _chunks(state.next_number, stop, chunk_size):
            # map keeps input order, so merging below is in code order.
            resolutions = list(executor.map(_resolve, enumerate_zip_codes(chunk.start, chunk.stop - 1)))
            _track_consecutive_failures(resolutions, streaks, failure_limit)

            for resolution in resolutions:
                if resolution.record is not None:
                    state.records[resolution.code] = resolution.record
                elif resolution.failed:
                    state.failed_codes.append(resolution.code)
                if resolution.conflict:
                    state.conflicts.append(
                        {
                            "code": resolution.code,
                            "kept_source": resolution.record.source if resolution.record else None,
                            "accepted_by": [o.source for o in resolution.outcomes if o.accepted],
                        }
                    )
                    log_event(
                        log,
                        f"sources disagree on code {resolution.code}; kept {resolution.record.source}",
                        level=logging.WARNING,
                        run_id=run_id,
                        stage="build-universe",
                        event="SOURCE_CONFLICT",
                        status="warning",
                    )
            state.next_number = chunk.stop
            _write_checkpoint(checkpoint_path, signature, state)
            log_event(
                log,
                f"universe chunk {format_zip_code(chunk.start)}-{format_zip_code(chunk.stop - 1)} done",
                run_id=run_id,
                stage="build-universe",
                event="CHUNK_DONE",
                status="ok",
                rows_in=len(chunk),
                rows_out=len(state.records),
            )

    records = validate_universe_records([state.records[code] for code in sorted(state.records)])
    out_path = data_dir / "out" / universe_config["filename"]
    write_universe_csv(out_path, records)

    by_source: dict[str, int] = {}
    for record in records:
        by_source[record.source] = by_source.get(record.source, 0) + 1

    warnings: list[str] = []
    full_range = (start, stop) == (ZIP_CODE_MIN, ZIP_CODE_MAX)
    if full_range and not check_universe_count(len(records), universe_config["expected_count"]):
        warnings.append("UNIVERSE_COUNT_OUT_OF_RANGE")
    if state.failed_codes:
        warnings.append("CODES_SKIPPED_AFTER_RETRIES")

    payload = {
        "run_id": run_id,
        "path": str(out_path),
        "merge_policy": MERGE_POLICY,
        "sources": [geocoder.name for geocoder in geocoders],
        "code_range": {"start": start, "stop": stop},
        "codes_scanned": stop - start + 1,
        "record_count": len(records),
        "records_by_source": dict(sorted(by_source.items())),
        "failed_codes": sorted(state.failed_codes),
        "conflicts": state.conflicts,
        "warnings": warnings,
    }
    write_universe_report(data_dir, payload)
    checkpoint_path.unlink(missing_ok=True)

    log_event(
        log,
        f"universe built with {len(records)} codes",
        run_id=run_id,
        stage="build-universe",
        event="UNIVERSE_WRITTEN",
        status="partial" if warnings else "ok",
        rows_out=len(records),
    )
    return payload
