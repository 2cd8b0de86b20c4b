"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from zip_radius.common.errors import ConfigError
from zip_radius.common.fs import read_yaml
from zip_radius.common.schema import validate_geocoders_config, validate_pipeline_config


@dataclass(frozen=True)
class ConfigBundle:
    geocoders: dict
    pipeline: dict


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must be a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def _overlay(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    geocoders = validate_geocoders_config(
        _load_yaml_with_overlay(config_dir / "geocoders.yml", _overlay("geocoders.yml")),
        allow_unknown=allow_unknown,
    )
    pipeline = validate_pipeline_config(
        _load_yaml_with_overlay(config_dir / "pipeline.yml", _overlay("pipeline.yml")),
        allow_unknown=allow_unknown,
    )
    return ConfigBundle(geocoders=geocoders, pipeline=pipeline)
