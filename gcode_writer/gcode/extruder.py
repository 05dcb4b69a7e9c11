"""Per-filament extrusion bookkeeping.

An :class:`Extruder` pairs one declared filament with the physical
extruder that feeds it and tracks how much filament has been pushed,
pulled back, and owed on the next restart.

In single-extruder multi-material mode every filament goes through the
same nozzle, so all extruders share one :class:`ExtrusionState`:
a retraction done before a filament swap is undone by the next
filament's unretract.  The running total of consumed filament stays on
each :class:`Extruder`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gcode_writer.configs.loader import PrintConfig


@dataclass
class ExtrusionState:
    """Mutable extrusion counters (mm of filament).

    Attributes
    ----------
    e : float
        Accumulator as written in ``E`` words.  Zeroed by ``G92 E0`` and,
        in relative mode, before every move.
    retracted : float
        Length currently pulled back.
    restart_extra : float
        Extra length to push on the next unretract.
    """

    e: float = 0.0
    retracted: float = 0.0
    restart_extra: float = 0.0


class Extruder:
    """One declared filament and the extrusion state that feeds it.

    Parameters
    ----------
    filament_id : int
        Filament id as used by toolchange requests.
    extruder_id : int
        Physical extruder index (per-extruder config lists).
    config : PrintConfig
        Writer configuration.
    state : ExtrusionState | None
        Shared counters; ``None`` gives this filament its own.
    """

    def __init__(
        self,
        filament_id: int,
        extruder_id: int,
        config: PrintConfig,
        state: ExtrusionState | None = None,
    ) -> None:
        self._id = filament_id
        self._extruder_id = extruder_id
        self._cfg = config
        self._state = state if state is not None else ExtrusionState()
        # never reset, never shared
        self._absolute_e = 0.0

    def __repr__(self) -> str:
        return (
            f"Extruder(filament={self._id}, extruder={self._extruder_id}, "
            f"e={self._state.e:.5f}, retracted={self._state.retracted:.5f})"
        )

    @property
    def id(self) -> int:
        return self._id

    @property
    def extruder_id(self) -> int:
        return self._extruder_id

    @property
    def state(self) -> ExtrusionState:
        return self._state

    @property
    def e(self) -> float:
        return self._state.e

    @property
    def retracted(self) -> float:
        return self._state.retracted

    @property
    def restart_extra(self) -> float:
        return self._state.restart_extra

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def _relative_reset(self) -> None:
        # relative E: every emitted value is a delta from zero
        if self._cfg.use_relative_e_distances:
            self._state.e = 0.0

    def extrude(self, de: float) -> float:
        """Add ``de`` to the accumulator and return it."""
        s = self._state
        self._relative_reset()
        s.e += de
        self._absolute_e += de
        if de < 0.0:
            s.retracted -= de
        return de

    def retract(self, length: float, restart_extra: float) -> float:
        """Pull back up to ``length`` in total; return the new retraction.

        Only the part not already retracted is pulled, so a second call
        with the same length returns 0.
        """
        s = self._state
        self._relative_reset()
        to_retract = max(0.0, length - s.retracted)
        if to_retract > 0.0:
            s.e -= to_retract
            self._absolute_e -= to_retract
            s.retracted += to_retract
            s.restart_extra = restart_extra
        return to_retract

    def unretract(self) -> float:
        """Push back everything retracted plus the restart extra."""
        s = self._state
        de = s.retracted + s.restart_extra
        self.extrude(de)
        s.retracted = 0.0
        s.restart_extra = 0.0
        return de

    def reset_e(self) -> None:
        """Zero the accumulator (after ``G92 E0``)."""
        self._state.e = 0.0

    # ------------------------------------------------------------------
    # Filament usage
    # ------------------------------------------------------------------

    @property
    def used_filament(self) -> float:
        """Filament length consumed so far (mm), retraction excluded."""
        return self._absolute_e + self._state.retracted

    @property
    def filament_crossection(self) -> float:
        d = self._cfg.get_at("filament_diameter", self._id)
        return d * d * math.pi / 4.0

    @property
    def extruded_volume(self) -> float:
        """Filament volume consumed so far (mm^3)."""
        return self.used_filament * self.filament_crossection

    # ------------------------------------------------------------------
    # Retraction settings
    # ------------------------------------------------------------------

    @property
    def retraction_length(self) -> float:
        return self._cfg.get_at("retraction_length", self._id)

    @property
    def retract_restart_extra(self) -> float:
        return self._cfg.get_at("retract_restart_extra", self._id)

    @property
    def retract_length_toolchange(self) -> float:
        return self._cfg.get_at("retract_length_toolchange", self._id)

    @property
    def retract_restart_extra_toolchange(self) -> float:
        return self._cfg.get_at("retract_restart_extra_toolchange", self._id)

    @property
    def retract_before_wipe(self) -> float:
        """Fraction of the retraction done before a wipe, in [0, 1]."""
        factor = self._cfg.get_at("retract_before_wipe", self._id) / 100.0
        return min(max(factor, 0.0), 1.0)

    @property
    def retract_speed(self) -> float:
        return self._cfg.get_at("retraction_speed", self._id)

    @property
    def deretract_speed(self) -> float:
        speed = self._cfg.get_at("deretraction_speed", self._id)
        return speed if speed > 0 else self.retract_speed
