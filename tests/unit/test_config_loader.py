from pathlib import Path

import pytest

from zip_radius.common.config_loader import load_all_configs
from zip_radius.common.errors import ConfigError


def _copy_repo_config(target: Path) -> Path:
    target.mkdir()
    for name in ("geocoders.yml", "pipeline.yml"):
        (target / name).write_text((Path("config") / name).read_text(encoding="utf-8"), encoding="utf-8")
    return target


def test_load_all_configs_from_repo_config_dir():
    bundle = load_all_configs(Path("config"))

    assert [source["name"] for source in bundle.geocoders["sources"]] == ["arcgis_world", "osm_nominatim"]
    assert bundle.pipeline["query"]["radius_miles"] == 20
    assert bundle.pipeline["query"]["margin"]["mode"] == "derived"
    assert bundle.pipeline["universe"]["code_range"] == {"start": 0, "stop": 99999}


def test_load_all_configs_applies_overlay_values(tmp_path: Path):
    base = _copy_repo_config(tmp_path / "base")
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "pipeline.yml").write_text(
        """query:
  radius_miles: 35
  margin:
    mode: fixed
universe:
  code_range:
    stop: 999
""",
        encoding="utf-8",
    )

    bundle = load_all_configs(base, overlay_config_dir=overlay)

    assert bundle.pipeline["query"]["radius_miles"] == 35
    assert bundle.pipeline["query"]["margin"] == {
        "mode": "fixed",
        "margin_lat": 0.5,
        "margin_lon": 0.5,
        "allow_unsafe_margins": False,
    }
    assert bundle.pipeline["universe"]["code_range"] == {"start": 0, "stop": 999}
    assert bundle.pipeline["query"]["index"] == "grid"


def test_load_all_configs_ignores_empty_overlay_file(tmp_path: Path):
    base = _copy_repo_config(tmp_path / "base")
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "geocoders.yml").write_text("", encoding="utf-8")

    bundle = load_all_configs(base, overlay_config_dir=overlay)
    assert bundle.geocoders["country"] == "USA"


def test_load_all_configs_rejects_non_mapping_overlay(tmp_path: Path):
    base = _copy_repo_config(tmp_path / "base")
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "pipeline.yml").write_text("- not\n- a\n- mapping\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_all_configs(base, overlay_config_dir=overlay)


def test_load_all_configs_missing_file(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_all_configs(tmp_path)
