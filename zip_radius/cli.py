"""CLI entrypoint for the facility ZIP code radius pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from zip_radius.common.config_loader import ConfigBundle, load_all_configs
from zip_radius.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, STAGES
from zip_radius.common.errors import PipelineError
from zip_radius.common.logging import build_logger, close_logger, log_event
from zip_radius.common.time_utils import generate_run_id, parse_run_date
from zip_radius.geocode.registry import build_geocoders, build_http_client
from zip_radius.pipeline.aggregate import aggregate_results, count_by_facility, match_count_warnings
from zip_radius.pipeline.export import load_universe, write_results_csv
from zip_radius.pipeline.facilities import load_facility_rows, load_resolved_facilities, resolve_facilities
from zip_radius.pipeline.query import run_radius_query
from zip_radius.pipeline.reports import write_query_report, write_run_summary
from zip_radius.pipeline.universe import build_universe


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=[*STAGES, "all"])
    parser.add_argument("--facilities", default=None, help="CSV with facility_id (or name) and address columns")
    parser.add_argument("--universe", default=None, help="universe CSV; defaults to <data-dir>/out/<universe.filename>")
    parser.add_argument("--radius-miles", type=float, default=None)
    parser.add_argument("--run-date", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--no-resume", action="store_true", help="ignore any universe build checkpoint")
    parser.add_argument("--rebuild-universe", action="store_true", help="with 'all', rebuild even if the universe exists")
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def _universe_path(args: argparse.Namespace, bundle: ConfigBundle, data_dir: Path) -> Path:
    if args.universe:
        return Path(args.universe)
    return data_dir / "out" / bundle.pipeline["universe"]["filename"]


def _resolved_path(bundle: ConfigBundle, data_dir: Path) -> Path:
    return data_dir / "intermediate" / bundle.pipeline["facilities"]["resolved_filename"]


def run_query_stage(
    args: argparse.Namespace,
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    logger: logging.Logger,
) -> dict:
    query_cfg = bundle.pipeline["query"]
    universe = load_universe(_universe_path(args, bundle, data_dir), logger=logger)
    facilities = load_resolved_facilities(_resolved_path(bundle, data_dir))

    outcomes = run_radius_query(
        facilities,
        universe,
        query_cfg,
        radius_miles=args.radius_miles,
        run_id=run_id,
        logger=logger,
    )
    results = aggregate_results(outcomes)
    out_path = data_dir / "out" / bundle.pipeline["output"]["results_filename"]
    write_results_csv(out_path, results)

    counts = count_by_facility(outcomes)
    facility_warnings = match_count_warnings(counts, int(query_cfg["max_expected_matches"]))
    for outcome in outcomes:
        if outcome.warnings:
            facility_warnings.setdefault(outcome.facility_id, []).extend(outcome.warnings)
    for facility_id, warnings in sorted(facility_warnings.items()):
        log_event(
            logger,
            f"facility {facility_id}: {', '.join(warnings)} ({counts.get(facility_id, 0)} matches)",
            level=logging.WARNING,
            run_id=run_id,
            stage="query",
            facility_id=facility_id,
            event="MATCH_COUNT_SUSPECT",
            status="warning",
        )

    payload = {
        "run_id": run_id,
        "path": str(out_path),
        "result_count": len(results),
        "matches_by_facility": counts,
        "candidates_by_facility": {o.facility_id: o.candidate_count for o in outcomes},
        "facility_warnings": {k: sorted(set(v)) for k, v in sorted(facility_warnings.items())},
    }
    write_query_report(data_dir, payload)
    return payload


def execute_stage(
    stage: str,
    args: argparse.Namespace,
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    logger: logging.Logger,
) -> dict:
    if stage == "query":
        return run_query_stage(args, bundle, data_dir, run_id, logger)

    http_client = build_http_client(bundle.geocoders, bundle.pipeline["http"])
    with http_client:
        geocoders = build_geocoders(bundle.geocoders, http_client)
        if stage == "build-universe":
            return build_universe(
                geocoders,
                bundle.pipeline["universe"],
                data_dir,
                run_id,
                resume=not args.no_resume,
                logger=logger,
            )
        if stage == "resolve-facilities":
            if not args.facilities:
                raise PipelineError("resolve-facilities needs --facilities")
            return resolve_facilities(
                load_facility_rows(Path(args.facilities)),
                geocoders,
                data_dir,
                run_id,
                resolved_filename=bundle.pipeline["facilities"]["resolved_filename"],
                logger=logger,
            )
    raise ValueError(f"Unknown stage: {stage}")


def _stages_for(args: argparse.Namespace, bundle: ConfigBundle, data_dir: Path) -> tuple[str, ...]:
    if args.command != "all":
        return (args.command,)
    if _universe_path(args, bundle, data_dir).exists() and not args.rebuild_universe:
        return tuple(stage for stage in STAGES if stage != "build-universe")
    return STAGES


def _is_partial(result: dict) -> bool:
    return bool(result.get("warnings") or result.get("unresolved") or result.get("facility_warnings"))


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    run_date = parse_run_date(args.run_date)
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    try:
        bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
        stages = _stages_for(args, bundle, data_dir)

        stage_results: dict[str, dict] = {}
        failed_stages: list[str] = []
        for stage in stages:
            log_event(logger, "stage start", run_id=run_id, stage=stage, event="STAGE_START", status="ok")
            try:
                stage_results[stage] = execute_stage(stage, args, bundle, data_dir, run_id, logger)
            except PipelineError as exc:
                failed_stages.append(stage)
                log_event(
                    logger,
                    f"stage failed: {exc}",
                    level=logging.ERROR,
                    run_id=run_id,
                    stage=stage,
                    event="STAGE_FAIL",
                    status="error",
                    error_code=exc.error_code,
                )
                # Later stages depend on this one's artifacts.
                break
            except Exception:
                failed_stages.append(stage)
                logger.exception(
                    "unexpected stage failure",
                    extra={
                        "run_id": run_id,
                        "stage": stage,
                        "event": "STAGE_FAIL",
                        "status": "error",
                        "error_code": "UNEXPECTED_ERROR",
                    },
                )
                break
            log_event(logger, "stage end", run_id=run_id, stage=stage, event="STAGE_END", status="ok")

        write_run_summary(
            data_dir,
            run_id=run_id,
            run_date=run_date,
            stage_results=stage_results,
            failed_stages=failed_stages,
        )
        if failed_stages:
            return EXIT_HARD_FAIL
        if any(_is_partial(result) for result in stage_results.values()):
            return EXIT_HARD_FAIL if args.strict else EXIT_PARTIAL
        return EXIT_SUCCESS
    finally:
        close_logger(logger)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
