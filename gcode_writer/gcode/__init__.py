"""
G-code emission module.

Fixed-decimal number formatting, firmware flavor dispatch, and the
stateful writer that tracks position, extrusion, Z-lift and caches.

The Job IR generator lives in :mod:`gcode_writer.gcode.generator`.
"""

from gcode_writer.gcode.flavor import FirmwareFlavor, FlavorDispatch
from gcode_writer.gcode.formatter import GCodeError, format_axis
from gcode_writer.gcode.state import LiftType
from gcode_writer.gcode.vm import GCodeVM
from gcode_writer.gcode.writer import GCodeWriter

__all__ = [
    "FirmwareFlavor",
    "FlavorDispatch",
    "GCodeError",
    "GCodeVM",
    "GCodeWriter",
    "LiftType",
    "format_axis",
]
