"""Mutable machine state owned by one :class:`GCodeWriter`.

One ``MachineState`` and one ``ToolchangeTable`` exist per exported job
(or plate).  They are mutated strictly in call order and never shared
between writers.

Z-lift states::

    Grounded     lifted == 0, pending == 0
    LiftPending  pending > 0        (recorded, nothing emitted yet)
    Lifted       lifted > 0         (head physically raised)

``lifted`` and ``pending`` are never both non-zero.
"""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

import numpy as np

from gcode_writer.gcode.extruder import Extruder
from gcode_writer.gcode.formatter import GCodeError

EPSILON = 1e-4


class LiftType(str, Enum):
    """How a pending Z-hop is realized on the next travel."""

    NORMAL = "normal"
    SLOPE = "slope"
    SPIRAL = "spiral"


@dataclass
class LiftState:
    lifted: float = 0.0
    pending: float = 0.0
    pending_kind: LiftType | None = None

    def clear_pending(self) -> None:
        self.pending = 0.0
        self.pending_kind = None


@dataclass
class KinematicCache:
    """Last emitted value and machine cap for acceleration or jerk.

    A cap of 0 means "no limit".
    """

    last_emitted: float = 0.0
    max_cap: float = 0.0

    def clamp(self, value: float) -> float:
        if self.max_cap > 0 and value > self.max_cap:
            return self.max_cap
        return value


@dataclass
class AccelerationState(KinematicCache):
    """Acceleration cache plus the values travel/extrude moves ask for."""

    print_acceleration: int = 0
    travel_table: list[int] = field(default_factory=list)
    first_layer_travel_table: list[int] = field(default_factory=list)

    def travel_for(self, extruder_id: int, first_layer: bool) -> int | None:
        table = self.first_layer_travel_table if first_layer else self.travel_table
        if not table:
            return None
        if 0 <= extruder_id < len(table):
            return table[extruder_id]
        return table[0]


@dataclass
class TemperatureCache:
    bed: int = 0
    bed_reached: bool = True


class ToolchangeTable:
    """Declared filaments sorted by id, looked up by binary search."""

    def __init__(self, extruders: Sequence[Extruder] = ()) -> None:
        self._extruders = sorted(extruders, key=lambda e: e.id)
        self._ids = [e.id for e in self._extruders]

    def __len__(self) -> int:
        return len(self._extruders)

    def __getitem__(self, index: int) -> Extruder:
        return self._extruders[index]

    def __iter__(self):
        return iter(self._extruders)

    def index_of(self, filament_id: int) -> int:
        """Index of ``filament_id`` in the table.

        Raises
        ------
        GCodeError
            If the filament was never declared.
        """
        i = bisect_left(self._ids, filament_id)
        if i == len(self._ids) or self._ids[i] != filament_id:
            raise GCodeError(
                f"Filament {filament_id} was not declared "
                f"(declared: {self._ids})"
            )
        return i


@dataclass
class MachineState:
    """Position, lift, caches and active filament of one writer."""

    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    position_clear: bool = False
    lift: LiftState = field(default_factory=LiftState)
    acceleration: AccelerationState = field(default_factory=AccelerationState)
    jerk: KinematicCache = field(default_factory=KinematicCache)
    temperature: TemperatureCache = field(default_factory=TemperatureCache)
    fan_speed: int | None = None
    is_first_layer: bool = False
    current_speed: float = 0.0
    current: int | None = None
