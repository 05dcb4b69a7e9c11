"""Writer configuration loading and validation."""

from gcode_writer.configs.loader import (
    ConfigError,
    PrintConfig,
    config_from_dict,
    load_config,
)

__all__ = [
    "ConfigError",
    "PrintConfig",
    "config_from_dict",
    "load_config",
]
