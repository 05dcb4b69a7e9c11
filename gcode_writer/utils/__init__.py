"""Cross-cutting utilities (lowest dependency layer).

    - Atomic I/O and YAML loading (fs)
    - Unified logging (logging_config)

No module in utils/ may import from gcode_writer's other subpackages.
"""

from . import fs
from . import logging_config

__all__ = ["fs", "logging_config"]
