"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from zip_radius.common.constants import ZIP_CODE_MAX, ZIP_CODE_MIN
from zip_radius.common.errors import ConfigError

GEOCODER_KINDS = {"arcgis", "nominatim"}
MARGIN_MODES = {"derived", "fixed"}
INDEX_KINDS = {"scan", "grid"}


def _assert_mapping(obj, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive(value, ctx: str) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive number, got {value!r}")


def validate_geocoders_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "geocoders config")
    top_keys = {"country", "contact", "sources"}
    _assert_required_keys(cfg, top_keys, "geocoders config")
    _assert_no_unknown_keys(cfg, top_keys, "geocoders config", allow_unknown)
    if not isinstance(cfg["contact"], str) or not cfg["contact"].strip():
        raise ConfigError("geocoders.contact must be a non-empty email address or URL")

    sources = cfg["sources"]
    if not isinstance(sources, list) or not sources:
        raise ConfigError("geocoders.sources must be a non-empty list")

    names: list[str] = []
    source_keys = {"name", "kind", "enabled", "endpoint", "rate_per_sec", "exact_score"}
    for idx, source in enumerate(sources):
        ctx = f"sources[{idx}]"
        _assert_mapping(source, ctx)
        _assert_required_keys(source, source_keys, ctx)
        _assert_no_unknown_keys(source, source_keys, ctx, allow_unknown)
        if source["kind"] not in GEOCODER_KINDS:
            raise ConfigError(f"Unsupported geocoder kind in {ctx}: {source['kind']}")
        _assert_positive(source["rate_per_sec"], f"{ctx}.rate_per_sec")
        names.append(source["name"])

    dupes = {name for name in names if names.count(name) > 1}
    if dupes:
        raise ConfigError(f"Duplicate geocoder names: {', '.join(sorted(dupes))}")
    if not any(source["enabled"] for source in sources):
        raise ConfigError("At least one geocoder source must be enabled")

    return cfg


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    _assert_mapping(cfg, "pipeline config")
    top_required = {"http", "universe", "facilities", "query", "output"}
    _assert_required_keys(cfg, top_required, "pipeline config")
    _assert_no_unknown_keys(cfg, top_required, "pipeline config", allow_unknown)

    _assert_required_keys(
        cfg["http"],
        {"connect_timeout", "read_timeout", "max_attempts", "max_wait"},
        "http",
    )

    universe = cfg["universe"]
    _assert_required_keys(
        universe,
        {
            "filename",
            "code_range",
            "checkpoint_every",
            "workers",
            "max_consecutive_failures",
            "expected_count",
            "query_all_sources",
        },
        "universe",
    )
    _assert_required_keys(universe["code_range"], {"start", "stop"}, "universe.code_range")
    start = universe["code_range"]["start"]
    stop = universe["code_range"]["stop"]
    if not (ZIP_CODE_MIN <= start <= stop <= ZIP_CODE_MAX):
        raise ConfigError(f"universe.code_range must satisfy {ZIP_CODE_MIN} <= start <= stop <= {ZIP_CODE_MAX}")
    _assert_positive(universe["checkpoint_every"], "universe.checkpoint_every")
    _assert_positive(universe["workers"], "universe.workers")
    _assert_positive(universe["max_consecutive_failures"], "universe.max_consecutive_failures")
    _assert_required_keys(universe["expected_count"], {"min", "max"}, "universe.expected_count")

    _assert_required_keys(cfg["facilities"], {"resolved_filename"}, "facilities")

    query = cfg["query"]
    _assert_required_keys(
        query,
        {"radius_miles", "margin", "index", "grid_cell_degrees", "workers", "max_expected_matches"},
        "query",
    )
    _assert_positive(query["radius_miles"], "query.radius_miles")
    _assert_positive(query["grid_cell_degrees"], "query.grid_cell_degrees")
    _assert_positive(query["workers"], "query.workers")
    if query["index"] not in INDEX_KINDS:
        raise ConfigError(f"query.index must be one of {sorted(INDEX_KINDS)}")

    margin = query["margin"]
    _assert_required_keys(margin, {"mode"}, "query.margin")
    if margin["mode"] not in MARGIN_MODES:
        raise ConfigError(f"query.margin.mode must be one of {sorted(MARGIN_MODES)}")
    if margin["mode"] == "fixed":
        _assert_required_keys(margin, {"margin_lat", "margin_lon"}, "query.margin")
        _assert_positive(margin["margin_lat"], "query.margin.margin_lat")
        _assert_positive(margin["margin_lon"], "query.margin.margin_lon")

    _assert_required_keys(cfg["output"], {"results_filename"}, "output")
    return cfg
