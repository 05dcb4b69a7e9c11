"""
G-code Writer Package.

Stateful firmware-flavor-aware G-code emitter for FFF printers. Turns
semantic requests (travel, extrude, retract, lift, toolchange,
temperature) into minimal G-code deltas.

Subpackages:
    gcode: Number formatting, flavor dispatch, writer, generator, re-parser
    job_ir: Intermediate representation for job operations
    configs: Printer configuration loading and validation
    utils: Atomic file I/O and logging setup
"""

__version__ = "0.1.0"

__all__ = ["gcode", "job_ir", "configs", "utils"]
