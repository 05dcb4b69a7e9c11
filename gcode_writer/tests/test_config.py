"""Tests for the configuration loader.

Validates that:
    - printer.yaml loads with the current schema
    - per-index lists fall back to their first element
    - machine limits apply only to the Marlin family
    - malformed files and values raise ConfigError
"""

from __future__ import annotations

import logging
from pathlib import Path

import pydantic
import pytest

from gcode_writer.configs.loader import (
    ConfigError,
    PrintConfig,
    config_from_dict,
    load_config,
)
from gcode_writer.gcode.flavor import FirmwareFlavor


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def config() -> PrintConfig:
    """Load the default printer.yaml shipped with the package."""
    return load_config()


def write_yaml(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "printer.yaml"
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Shipped configuration
# ---------------------------------------------------------------------------


class TestShippedConfig:
    def test_flavor(self, config: PrintConfig) -> None:
        assert config.gcode_flavor is FirmwareFlavor.MARLIN_LEGACY

    def test_speeds_positive(self, config: PrintConfig) -> None:
        assert all(s > 0 for s in config.travel_speed)
        assert all(s > 0 for s in config.retraction_speed)

    def test_lift_band_not_empty(self, config: PrintConfig) -> None:
        for above, below in zip(config.retract_lift_above, config.retract_lift_below):
            assert above <= below

    def test_machine_limits(self, config: PrintConfig) -> None:
        assert config.max_acceleration == 5000
        assert config.max_jerk == 10


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class TestLookups:
    def test_get_at_in_range(self) -> None:
        cfg = config_from_dict({"z_hop": [0.2, 0.6]})
        assert cfg.get_at("z_hop", 1) == 0.6

    def test_get_at_falls_back_to_first(self) -> None:
        cfg = config_from_dict({"z_hop": [0.2, 0.6]})
        assert cfg.get_at("z_hop", 5) == 0.2
        assert cfg.get_at("z_hop", -1) == 0.2

    def test_extruder_identity(self) -> None:
        assert config_from_dict({}).extruder_for_filament(3) == 3

    def test_extruder_semm(self) -> None:
        cfg = config_from_dict({"single_extruder_multi_material": True})
        assert cfg.extruder_for_filament(3) == 0

    def test_extruder_filament_map(self) -> None:
        cfg = config_from_dict({"filament_map": [2, 1]})
        assert cfg.extruder_for_filament(0) == 1
        assert cfg.extruder_for_filament(1) == 0

    def test_limits_off_outside_marlin_family(self) -> None:
        cfg = config_from_dict({
            "gcode_flavor": "reprapfirmware",
            "machine_max_acceleration_extruding": [500.0],
            "machine_max_jerk_x": [5.0],
        })
        assert cfg.max_acceleration == 0
        assert cfg.max_jerk == 0

    def test_jerk_cap_uses_smaller_axis(self) -> None:
        cfg = config_from_dict({
            "gcode_flavor": "klipper",
            "machine_max_jerk_x": [12.0],
            "machine_max_jerk_y": [7.0],
        })
        assert cfg.max_jerk == 7


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_unknown_flavor(self) -> None:
        with pytest.raises(ConfigError):
            config_from_dict({"gcode_flavor": "grbl"})

    def test_unknown_key(self) -> None:
        with pytest.raises(ConfigError):
            config_from_dict({"nozzle_count": 2})

    def test_empty_list(self) -> None:
        with pytest.raises(ConfigError, match="at least one value"):
            config_from_dict({"travel_speed": []})

    def test_negative_z_hop(self) -> None:
        with pytest.raises(ConfigError):
            config_from_dict({"z_hop": [-0.1]})

    def test_zero_travel_speed(self) -> None:
        with pytest.raises(ConfigError):
            config_from_dict({"travel_speed": [0.0]})

    def test_before_wipe_percent(self) -> None:
        with pytest.raises(ConfigError):
            config_from_dict({"retract_before_wipe": [120.0]})

    def test_filament_map_one_based(self) -> None:
        with pytest.raises(ConfigError):
            config_from_dict({"filament_map": [0]})

    @pytest.mark.parametrize("angle", [0.0, 90.0])
    def test_slope_threshold_open_interval(self, angle: float) -> None:
        with pytest.raises(ConfigError):
            config_from_dict({"slope_threshold_deg": angle})

    def test_frozen(self) -> None:
        cfg = config_from_dict({})
        with pytest.raises(pydantic.ValidationError):
            cfg.gcode_comments = True

    def test_accel_to_decel_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="gcode_writer.configs.loader"):
            config_from_dict({"accel_to_decel_enable": True})
        assert "accel_to_decel_enable is ignored" in caplog.text

    def test_empty_lift_band_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="gcode_writer.configs.loader"):
            config_from_dict({"retract_lift_above": [5.0], "retract_lift_below": [1.0]})
        assert "lift band is empty" in caplog.text


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_custom_file(self, tmp_path: Path) -> None:
        path = write_yaml(tmp_path, "gcode_flavor: klipper\nz_hop: [0.2]\n")
        cfg = load_config(path)
        assert cfg.gcode_flavor is FirmwareFlavor.KLIPPER
        assert cfg.z_hop == (0.2,)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Empty"):
            load_config(write_yaml(tmp_path, ""))

    def test_non_mapping_root(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="mapping"):
            load_config(write_yaml(tmp_path, "- 1\n- 2\n"))

    def test_invalid_value_in_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_config(write_yaml(tmp_path, "travel_speed: [-5]\n"))

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(write_yaml(tmp_path, "z_hop: [0.4\n"))
