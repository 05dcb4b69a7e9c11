"""
Job Intermediate Representation module.

Defines every writer request as an immutable dataclass, plus loading of
YAML job files. This vocabulary is the contract between a toolpath
planner and G-code generation.

All coordinates are in millimeters, writer frame.
"""

from gcode_writer.job_ir.operations import (
    Comment,
    ExtrudeArc,
    ExtrudeTo,
    JobFile,
    Lift,
    Operation,
    Plate,
    ResetExtrusion,
    Retract,
    SelectFilament,
    SetAcceleration,
    SetBedTemperature,
    SetChamberTemperature,
    SetFan,
    SetFirstLayer,
    SetJerk,
    SetPressureAdvance,
    SetPrintAcceleration,
    SetTemperature,
    TravelTo,
    TravelToZ,
    Unlift,
    Unretract,
    UpdateProgress,
    load_job,
    operations_from_dicts,
)

__all__ = [
    "Comment",
    "ExtrudeArc",
    "ExtrudeTo",
    "JobFile",
    "Lift",
    "Operation",
    "Plate",
    "ResetExtrusion",
    "Retract",
    "SelectFilament",
    "SetAcceleration",
    "SetBedTemperature",
    "SetChamberTemperature",
    "SetFan",
    "SetFirstLayer",
    "SetJerk",
    "SetPressureAdvance",
    "SetPrintAcceleration",
    "SetTemperature",
    "TravelTo",
    "TravelToZ",
    "Unlift",
    "Unretract",
    "UpdateProgress",
    "load_job",
    "operations_from_dicts",
]
