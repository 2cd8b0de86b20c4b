"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from zip_radius.common.fs import write_json


def _reports_dir(data_dir: Path) -> Path:
    return data_dir / "out" / "reports"


def write_universe_report(data_dir: Path, payload: dict) -> Path:
    report_path = _reports_dir(data_dir) / "universe_report.json"
    write_json(report_path, payload)
    return report_path


def write_query_report(data_dir: Path, payload: dict) -> Path:
    report_path = _reports_dir(data_dir) / "query_report.json"
    write_json(report_path, payload)
    return report_path


def write_run_summary(
    data_dir: Path,
    *,
    run_id: str,
    run_date: str,
    stage_results: dict[str, dict],
    failed_stages: list[str],
) -> Path:
    warning_count = 0
    for result in stage_results.values():
        warning_count += len(result.get("warnings", []))
        warning_count += len(result.get("unresolved", []))
        for facility_warnings in result.get("facility_warnings", {}).values():
            warning_count += len(facility_warnings)

    status = "success"
    if failed_stages:
        status = "error"
    elif warning_count > 0:
        status = "partial"

    totals = {}
    if "resolve-facilities" in stage_results:
        facilities = stage_results["resolve-facilities"]
        totals["facilities_resolved"] = len(facilities.get("resolved", []))
        totals["facilities_unresolved"] = len(facilities.get("unresolved", []))
    if "query" in stage_results:
        totals["result_rows"] = stage_results["query"].get("result_count", 0)
        totals["matches_by_facility"] = stage_results["query"].get("matches_by_facility", {})
    if "build-universe" in stage_results:
        totals["universe_codes"] = stage_results["build-universe"].get("record_count", 0)

    summary_path = _reports_dir(data_dir) / "run_summary.json"
    write_json(
        summary_path,
        {
            "run_id": run_id,
            "run_date": run_date,
            "status": status,
            "stages": sorted(stage_results),
            "failed_stages": failed_stages,
            "totals": totals,
            "warning_count": warning_count,
        },
    )
    return summary_path
