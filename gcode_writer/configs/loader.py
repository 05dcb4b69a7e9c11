"""Configuration loader for the G-code writer.

Loads ``printer.yaml`` and validates it into a frozen pydantic model.
Every option the writer reads lives here: firmware flavor, extrusion
mode, retraction, lift band, travel speeds and machine limits.

Per-extruder and per-filament options are lists.  An index past the end
of a list resolves to the first element (:meth:`PrintConfig.get_at`), so
a single-element list applies to every extruder.

Speeds are stored in **mm/s**.  Conversion to the G-code ``F`` parameter
(mm/min) happens only in the writer.

Usage::

    from gcode_writer.configs.loader import load_config
    cfg = load_config()                       # default path
    cfg = load_config("/custom/printer.yaml") # explicit path
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from gcode_writer.gcode.flavor import FirmwareFlavor
from gcode_writer.utils.fs import load_yaml

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_PER_INDEX = (
    "machine_max_acceleration_extruding",
    "machine_max_jerk_x",
    "machine_max_jerk_y",
    "retract_lift_above",
    "retract_lift_below",
    "travel_speed",
    "travel_speed_z",
    "z_hop",
    "retraction_length",
    "retract_restart_extra",
    "retract_length_toolchange",
    "retract_restart_extra_toolchange",
    "retract_before_wipe",
    "retraction_speed",
    "deretraction_speed",
    "filament_diameter",
)


class PrintConfig(BaseModel):
    """Validated writer configuration (one build job).

    Per-extruder lists are indexed by physical extruder id, per-filament
    lists by filament id.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # -- dialect and modes --------------------------------------------------
    gcode_flavor: FirmwareFlavor = FirmwareFlavor.MARLIN_LEGACY
    use_relative_e_distances: bool = False
    use_firmware_retraction: bool = False
    single_extruder_multi_material: bool = False
    gcode_comments: bool = False
    slope_threshold_deg: float = Field(3.0, gt=0.0, lt=90.0)
    plate_offset: tuple[float, float] = (0.0, 0.0)

    # -- machine limits -----------------------------------------------------
    machine_max_acceleration_extruding: tuple[float, ...] = (0.0,)
    machine_max_jerk_x: tuple[float, ...] = (0.0,)
    machine_max_jerk_y: tuple[float, ...] = (0.0,)
    accel_to_decel_enable: bool = False
    accel_to_decel_factor: float = Field(50.0, ge=0.0, le=100.0)

    # -- prime tower --------------------------------------------------------
    prime_tower_lift_height: float = Field(0.0, ge=0.0)
    prime_tower_lift_speed: float = Field(0.0, ge=0.0)

    # -- per extruder -------------------------------------------------------
    retract_lift_above: tuple[float, ...] = (0.0,)
    retract_lift_below: tuple[float, ...] = (400.0,)
    travel_speed: tuple[float, ...] = (200.0,)
    travel_speed_z: tuple[float, ...] = (0.0,)

    # -- per filament -------------------------------------------------------
    z_hop: tuple[float, ...] = (0.4,)
    retraction_length: tuple[float, ...] = (0.8,)
    retract_restart_extra: tuple[float, ...] = (0.0,)
    retract_length_toolchange: tuple[float, ...] = (2.0,)
    retract_restart_extra_toolchange: tuple[float, ...] = (0.0,)
    retract_before_wipe: tuple[float, ...] = (0.0,)
    retraction_speed: tuple[float, ...] = (30.0,)
    deretraction_speed: tuple[float, ...] = (0.0,)
    filament_diameter: tuple[float, ...] = (1.75,)
    filament_map: tuple[int, ...] = ()

    @field_validator(*_PER_INDEX)
    @classmethod
    def validate_per_index(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        if not v:
            raise ValueError("list must contain at least one value")
        return v

    @field_validator(
        "machine_max_acceleration_extruding",
        "machine_max_jerk_x",
        "machine_max_jerk_y",
        "retract_lift_above",
        "retract_lift_below",
        "travel_speed_z",
        "z_hop",
        "retraction_length",
        "retract_restart_extra",
        "retract_length_toolchange",
        "retract_restart_extra_toolchange",
        "deretraction_speed",
    )
    @classmethod
    def validate_non_negative(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        for x in v:
            if x < 0:
                raise ValueError(f"values must be >= 0, got {x}")
        return v

    @field_validator("travel_speed", "retraction_speed", "filament_diameter")
    @classmethod
    def validate_positive(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        for x in v:
            if x <= 0:
                raise ValueError(f"values must be > 0, got {x}")
        return v

    @field_validator("retract_before_wipe")
    @classmethod
    def validate_percent(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        for x in v:
            if not 0.0 <= x <= 100.0:
                raise ValueError(f"percent must be in [0, 100], got {x}")
        return v

    @field_validator("filament_map")
    @classmethod
    def validate_filament_map(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        for x in v:
            if x < 1:
                raise ValueError(f"filament_map entries are 1-based, got {x}")
        return v

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_at(self, key: str, index: int) -> Any:
        """Return ``key[index]``, falling back to the first element."""
        values = getattr(self, key)
        if 0 <= index < len(values):
            return values[index]
        return values[0]

    def extruder_for_filament(self, filament_id: int) -> int:
        """Physical extruder (0-based) that feeds ``filament_id``."""
        if self.filament_map:
            return self.get_at("filament_map", filament_id) - 1
        if self.single_extruder_multi_material:
            return 0
        return filament_id

    @property
    def max_acceleration(self) -> int:
        """Acceleration cap, 0 when the dialect has no machine limits."""
        if not self.gcode_flavor.is_marlin_family:
            return 0
        return round(self.machine_max_acceleration_extruding[0])

    @property
    def max_jerk(self) -> int:
        """XY jerk cap, 0 when the dialect has no machine limits."""
        if not self.gcode_flavor.is_marlin_family:
            return 0
        return round(min(self.machine_max_jerk_x[0], self.machine_max_jerk_y[0]))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_config(cfg: PrintConfig) -> None:
    """Cross-field checks that are legal but almost always a mistake."""
    for i, (above, below) in enumerate(
        zip(cfg.retract_lift_above, cfg.retract_lift_below)
    ):
        if below < above:
            logger.warning(
                "Extruder %d lift band is empty (above=%.3f > below=%.3f); "
                "Z-hop will never fire",
                i,
                above,
                below,
            )

    if cfg.accel_to_decel_enable and cfg.gcode_flavor is not FirmwareFlavor.KLIPPER:
        logger.warning(
            "accel_to_decel_enable is ignored for flavor '%s'",
            cfg.gcode_flavor.value,
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def config_from_dict(data: dict[str, Any]) -> PrintConfig:
    """Validate an in-memory mapping into a :class:`PrintConfig`.

    Raises
    ------
    ConfigError
        If any field is unknown or fails validation.
    """
    try:
        config = PrintConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
    except TypeError as exc:
        raise ConfigError(f"Invalid configuration value: {exc}") from exc
    _validate_config(config)
    return config


def load_config(path: str | Path | None = None) -> PrintConfig:
    """Load and validate writer configuration from YAML.

    Parameters
    ----------
    path : str | Path | None
        Path to ``printer.yaml``.  ``None`` loads the default shipped
        alongside this module.

    Returns
    -------
    PrintConfig
        Fully validated, frozen configuration object.

    Raises
    ------
    ConfigError
        If the file is empty or any field fails validation.
    FileNotFoundError
        If *path* does not exist.
    """
    if path is None:
        path = Path(__file__).parent / "printer.yaml"
    else:
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading configuration from %s", path)

    try:
        data = load_yaml(path)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        raise ConfigError(f"Empty configuration file: {path}")
    if not isinstance(data, dict):
        raise ConfigError(
            f"Configuration root must be a mapping, got {type(data).__name__}"
        )

    config = config_from_dict(data)
    logger.info(
        "Configuration loaded successfully (flavor=%s)", config.gcode_flavor.value
    )
    return config
