from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from zip_radius.cli import parse_args
from zip_radius.common.logging import build_logger, close_logger, log_event
from zip_radius.common.time_utils import generate_run_id, parse_run_date


def test_parse_args_defaults():
    args = parse_args(["query"])
    assert args.command == "query"
    assert args.config_dir == "./config"
    assert args.data_dir == "./data"
    assert args.radius_miles is None
    assert args.strict is False
    assert args.no_resume is False


def test_parse_args_all_with_overrides():
    args = parse_args(["all", "--facilities", "f.csv", "--radius-miles", "12.5", "--strict", "--rebuild-universe"])
    assert args.facilities == "f.csv"
    assert args.radius_miles == 12.5
    assert args.strict
    assert args.rebuild_universe


def test_parse_args_rejects_unknown_stage():
    with pytest.raises(SystemExit):
        parse_args(["harvest"])


def test_run_id_and_run_date():
    assert generate_run_id().startswith("run-")
    assert parse_run_date("2026-03-01") == "2026-03-01"
    with pytest.raises(ValueError):
        parse_run_date("01/03/2026")


def test_logger_writes_json_lines(tmp_path: Path):
    logger = build_logger("run-test", data_dir=tmp_path, level="INFO")
    try:
        log_event(logger, "hello", run_id="run-test", stage="query", event="X", status="ok", rows_out=3)
        log_event(logger, "hidden", level=logging.DEBUG, run_id="run-test")
    finally:
        close_logger(logger)

    lines = (tmp_path / "run_meta" / "run-test.log.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert payload["message"] == "hello"
    assert payload["stage"] == "query"
    assert payload["rows_out"] == 3
    assert payload["facility_id"] is None
    assert payload["level"] == "INFO"
