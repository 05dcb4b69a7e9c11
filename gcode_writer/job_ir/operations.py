"""Job IR operations -- the vocabulary between a toolpath planner and G-code.

Every request the writer understands is an immutable, slotted
dataclass.  Operations use **semantic** names (``Retract``, not
``G1 E-0.8``), **millimetre** units and **writer-frame** coordinates
(the plate offset is applied by the writer, not here).

A job is a flat, ordered list of operations.  Order is meaning: the
writer tracks position, extrusion and lift state across calls, so the
list must already be in machine execution order.

Serialized form
---------------
A job file is YAML::

    filaments: [0, 1]          # optional; inferred from select_filament
    operations:                # or ``plates: [[...], [...]]``
      - {op: select_filament, filament_id: 0}
      - {op: travel_to, x: 10, y: 10, z: 0.2}
      - {op: extrude_to, x: 20, y: 10, e: 0.33}

``op`` is the snake_case class name; the remaining keys are fields.
"""

from __future__ import annotations

import re
from abc import ABC
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Iterable

import yaml

from gcode_writer.gcode.formatter import GCodeError
from gcode_writer.gcode.state import LiftType
from gcode_writer.utils.fs import load_yaml

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

Plate = list["Operation"]
"""Operations exported together by one writer instance."""

# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Operation(ABC):
    """Base class for all job operations."""

    pass


# ---------------------------------------------------------------------------
# Tool selection
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SelectFilament(Operation):
    """Activate a declared filament (toolchange).

    Parameters
    ----------
    filament_id : int
        Filament to switch to.  Must appear in the job's filament list.
    """

    filament_id: int

    def __post_init__(self) -> None:
        if self.filament_id < 0:
            raise ValueError(f"filament_id must be >= 0, got {self.filament_id}")


# ---------------------------------------------------------------------------
# Motion
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TravelTo(Operation):
    """Non-printing move.

    Parameters
    ----------
    x, y : float
        Target in writer-frame mm.
    z : float | None
        Target Z.  ``None`` keeps the current Z and never realizes a
        pending lift.
    comment : str
        Optional line comment (emitted only with comments enabled).
    """

    x: float
    y: float
    z: float | None = None
    comment: str = ""


@dataclass(frozen=True, slots=True)
class TravelToZ(Operation):
    """Vertical move, e.g. a layer change."""

    z: float
    comment: str = ""


@dataclass(frozen=True, slots=True)
class ExtrudeTo(Operation):
    """Printing move.

    Parameters
    ----------
    x, y : float
        End point in writer-frame mm.
    e : float
        Filament length to push (mm), a delta.
    z : float | None
        End Z for a 3D move; ``None`` for a planar one.
    no_extrusion : bool
        Emit the move without touching E (ironing, wipes).
    """

    x: float
    y: float
    e: float
    z: float | None = None
    comment: str = ""
    no_extrusion: bool = False


@dataclass(frozen=True, slots=True)
class ExtrudeArc(Operation):
    """Printing arc (G2/G3) in centre-offset form.

    Parameters
    ----------
    x, y : float
        End point in writer-frame mm.
    i, j : float
        Offset from the current position to the arc centre.
    e : float
        Filament length to push (mm).
    ccw : bool
        ``True`` for G3 (counter-clockwise), ``False`` for G2.
    """

    x: float
    y: float
    i: float
    j: float
    e: float
    ccw: bool = True
    comment: str = ""
    no_extrusion: bool = False


# ---------------------------------------------------------------------------
# Retraction and Z-hop
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Retract(Operation):
    """Pull filament back.

    Parameters
    ----------
    before_wipe : bool
        Only retract the configured before-wipe fraction.
    toolchange : bool
        Use the toolchange retraction length.
    """

    before_wipe: bool = False
    toolchange: bool = False


@dataclass(frozen=True, slots=True)
class Unretract(Operation):
    """Push back everything retracted plus the restart extra."""

    pass


@dataclass(frozen=True, slots=True)
class Lift(Operation):
    """Z-hop.

    Parameters
    ----------
    kind : str
        ``"normal"``, ``"slope"`` or ``"spiral"``.
    eager : bool
        Emit the climb now instead of on the next travel.
    spiral_vase : bool
        Lazy lift that is emitted straight away (vase mode).
    tool_change : bool
        Apply the prime tower lift overrides.
    """

    kind: str = LiftType.NORMAL.value
    eager: bool = False
    spiral_vase: bool = False
    tool_change: bool = False

    def __post_init__(self) -> None:
        valid = [k.value for k in LiftType]
        if self.kind not in valid:
            raise ValueError(f"Lift kind must be one of {valid}, got {self.kind!r}")


@dataclass(frozen=True, slots=True)
class Unlift(Operation):
    """Drop back to layer height."""

    pass


@dataclass(frozen=True, slots=True)
class ResetExtrusion(Operation):
    """Zero the extrusion accumulator (``G92 E0`` in absolute mode)."""

    force: bool = False


# ---------------------------------------------------------------------------
# Temperatures and fans
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SetTemperature(Operation):
    """Nozzle temperature (deg C).

    ``tool`` selects a specific nozzle when several are installed.
    """

    temperature: int
    wait: bool = False
    tool: int | None = None

    def __post_init__(self) -> None:
        if self.temperature < 0:
            raise ValueError(f"temperature must be >= 0, got {self.temperature}")


@dataclass(frozen=True, slots=True)
class SetBedTemperature(Operation):
    temperature: int
    wait: bool = False

    def __post_init__(self) -> None:
        if self.temperature < 0:
            raise ValueError(f"temperature must be >= 0, got {self.temperature}")


@dataclass(frozen=True, slots=True)
class SetChamberTemperature(Operation):
    temperature: int
    wait: bool = False

    def __post_init__(self) -> None:
        if self.temperature < 0:
            raise ValueError(f"temperature must be >= 0, got {self.temperature}")


@dataclass(frozen=True, slots=True)
class SetFan(Operation):
    """Part-cooling fan.

    Parameters
    ----------
    speed : int
        Percent in [0, 100]; 0 turns the fan off.
    """

    speed: int

    def __post_init__(self) -> None:
        if not 0 <= self.speed <= 100:
            raise ValueError(f"SetFan speed must be in [0, 100], got {self.speed}")


# ---------------------------------------------------------------------------
# Kinematics
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SetAcceleration(Operation):
    """Emit an acceleration change now (mm/s^2)."""

    acceleration: float

    def __post_init__(self) -> None:
        if self.acceleration < 0:
            raise ValueError(f"acceleration must be >= 0, got {self.acceleration}")


@dataclass(frozen=True, slots=True)
class SetPrintAcceleration(Operation):
    """Acceleration requested ahead of every following extrusion move."""

    acceleration: int

    def __post_init__(self) -> None:
        if self.acceleration < 0:
            raise ValueError(f"acceleration must be >= 0, got {self.acceleration}")


@dataclass(frozen=True, slots=True)
class SetTravelAccelerations(Operation):
    """Per-extruder acceleration requested ahead of every travel move.

    Parameters
    ----------
    accelerations : tuple[int, ...]
        One value per physical extruder; an unknown extruder uses the
        first.  Empty disables travel accelerations.
    """

    accelerations: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        _freeze_accelerations(self)


@dataclass(frozen=True, slots=True)
class SetFirstLayerTravelAccelerations(Operation):
    """Travel accelerations used while the first-layer flag is set."""

    accelerations: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        _freeze_accelerations(self)


def _freeze_accelerations(op: Operation) -> None:
    # YAML hands over lists; store an immutable tuple
    values = tuple(int(a) for a in op.accelerations)
    if any(a < 0 for a in values):
        raise ValueError(f"accelerations must be >= 0, got {values}")
    object.__setattr__(op, "accelerations", values)


@dataclass(frozen=True, slots=True)
class SetJerk(Operation):
    jerk: float


@dataclass(frozen=True, slots=True)
class SetPressureAdvance(Operation):
    """Pressure advance factor; negative values are ignored by the writer."""

    value: float


@dataclass(frozen=True, slots=True)
class SetFirstLayer(Operation):
    """Switch travel acceleration to the first-layer table."""

    first_layer: bool = True


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UpdateProgress(Operation):
    """Progress report (``num`` of ``tot`` layers)."""

    num: int
    tot: int
    allow_100: bool = False

    def __post_init__(self) -> None:
        if self.tot <= 0:
            raise ValueError(f"UpdateProgress tot must be > 0, got {self.tot}")


@dataclass(frozen=True, slots=True)
class Comment(Operation):
    """Free-standing ``; text`` line, always emitted."""

    text: str


# ---------------------------------------------------------------------------
# Construction from plain data
# ---------------------------------------------------------------------------

_OPERATION_TYPES: tuple[type[Operation], ...] = (
    SelectFilament,
    TravelTo,
    TravelToZ,
    ExtrudeTo,
    ExtrudeArc,
    Retract,
    Unretract,
    Lift,
    Unlift,
    ResetExtrusion,
    SetTemperature,
    SetBedTemperature,
    SetChamberTemperature,
    SetFan,
    SetAcceleration,
    SetPrintAcceleration,
    SetTravelAccelerations,
    SetFirstLayerTravelAccelerations,
    SetJerk,
    SetPressureAdvance,
    SetFirstLayer,
    UpdateProgress,
    Comment,
)


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


OPERATIONS_BY_NAME: dict[str, type[Operation]] = {
    _snake_case(cls.__name__): cls for cls in _OPERATION_TYPES
}
"""``op`` key -> operation class, e.g. ``"travel_to_z" -> TravelToZ``."""


def operation_from_dict(data: dict[str, Any]) -> Operation:
    """Build one operation from ``{"op": name, **fields}``.

    Raises
    ------
    GCodeError
        If ``op`` is missing or unknown, a field is unknown or missing,
        or a field fails validation.
    """
    if not isinstance(data, dict):
        raise GCodeError(f"Operation must be a mapping, got {type(data).__name__}")
    params = dict(data)
    name = params.pop("op", None)
    if name is None:
        raise GCodeError(f"Operation has no 'op' key: {data!r}")
    cls = OPERATIONS_BY_NAME.get(name)
    if cls is None:
        raise GCodeError(
            f"Unknown operation {name!r}; expected one of {sorted(OPERATIONS_BY_NAME)}"
        )

    allowed = {f.name for f in fields(cls)}
    unknown = set(params) - allowed
    if unknown:
        raise GCodeError(f"Unknown field(s) {sorted(unknown)} for operation {name!r}")

    try:
        return cls(**params)
    except (TypeError, ValueError) as exc:
        raise GCodeError(f"Invalid operation {name!r}: {exc}") from exc


def operations_from_dicts(items: Iterable[dict[str, Any]]) -> list[Operation]:
    """Build an ordered operation list from plain mappings."""
    ops = []
    for index, item in enumerate(items):
        try:
            ops.append(operation_from_dict(item))
        except GCodeError as exc:
            raise GCodeError(f"Operation #{index}: {exc}") from exc
    return ops


# ---------------------------------------------------------------------------
# Job files
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class JobFile:
    """A parsed job document.

    Parameters
    ----------
    plates : tuple[Plate, ...]
        One operation list per plate; a single-plate job has one entry.
    filaments : tuple[int, ...]
        Declared filament ids.  Empty means "infer from the operations".
    """

    plates: tuple[Plate, ...]
    filaments: tuple[int, ...] = ()

    @property
    def operations(self) -> Plate:
        """All operations of all plates, in order."""
        return [op for plate in self.plates for op in plate]


def _as_list(value: Any, key: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise GCodeError(f"Job '{key}' must be a list, got {type(value).__name__}")
    return value


def job_from_dict(data: dict[str, Any]) -> JobFile:
    if not isinstance(data, dict):
        raise GCodeError(f"Job root must be a mapping, got {type(data).__name__}")

    filaments = data.get("filaments") or ()
    if not isinstance(filaments, (list, tuple)) or not all(
        isinstance(f, int) and f >= 0 for f in filaments
    ):
        raise GCodeError(f"filaments must be non-negative integers, got {filaments!r}")

    if ("operations" in data) == ("plates" in data):
        raise GCodeError("Job must contain exactly one of 'operations' or 'plates'")

    if "operations" in data:
        plates = (operations_from_dicts(_as_list(data["operations"], "operations")),)
    else:
        plates = tuple(
            operations_from_dicts(_as_list(plate, "plate"))
            for plate in _as_list(data["plates"], "plates")
        )
        if not plates:
            raise GCodeError("Job 'plates' list is empty")

    return JobFile(plates=plates, filaments=tuple(filaments))


def load_job(path: str | Path) -> JobFile:
    """Read a YAML job file.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    GCodeError
        If the document is empty, not valid YAML, or malformed.
    """
    path = Path(path)
    try:
        data = load_yaml(path)
    except yaml.YAMLError as exc:
        raise GCodeError(f"Invalid YAML in job file {path}: {exc}") from exc
    if data is None:
        raise GCodeError(f"Empty job file: {path}")
    return job_from_dict(data)
