"""Stateful G-code writer for FFF printers.

The writer turns one semantic request at a time (travel here, extrude
there, retract, change tool, set a temperature) into firmware text.  It
tracks the machine state needed to emit *deltas*: head position,
extrusion accumulator, Z-lift bookkeeping, last emitted acceleration,
jerk, fan speed and bed temperature, and the active filament.

Calls must be made in machine execution order.  Every call both reads
and mutates state, so skipping or reordering one changes the meaning of
everything after it.

Coordinates:
    Positions are kept in the writer frame.  Emitted X/Y are the
    position minus ``plate_offset``; Z is emitted unchanged.

Feed rate convention:
    Configuration stores mm/s.  ``F`` words are mm/min::

        F_value = speed_mm_s * 60.0

Z-hop:
    ``lazy_lift`` only records a pending lift.  The next
    :meth:`travel_to_xyz` realizes it, either folded into the travel or
    as a normal, slope or spiral climb.  ``eager_lift`` emits the climb
    immediately.  ``unlift`` drops back to layer height.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Sequence

import numpy as np

from gcode_writer.gcode.extruder import Extruder, ExtrusionState
from gcode_writer.gcode.flavor import FirmwareFlavor, FlavorDispatch
from gcode_writer.gcode.formatter import G1Formatter, G2G3Formatter, GCodeError
from gcode_writer.gcode.state import (
    EPSILON,
    LiftType,
    MachineState,
    ToolchangeTable,
)

if TYPE_CHECKING:
    from gcode_writer.configs.loader import PrintConfig

logger = logging.getLogger(__name__)

_MAX_FEED_MM_MIN = 100000.0


class GCodeWriter:
    """Emit minimal G-code deltas for one build job.

    Parameters
    ----------
    config : PrintConfig
        Validated configuration.  Flavor, comment verbosity and slope
        threshold are fixed for the lifetime of the writer.

    Notes
    -----
    Declare filaments with :meth:`set_extruders` and activate one with
    :meth:`toolchange` (or :meth:`init_extruder`) before any motion.
    """

    def __init__(self, config: PrintConfig) -> None:
        self._cfg = config
        self._flavor = FlavorDispatch(config.gcode_flavor, config.gcode_comments)
        self.comments: bool = config.gcode_comments
        self.slope_threshold: float = math.radians(config.slope_threshold_deg)
        self.multiple_extruders: bool = False

        self._state = MachineState()
        self._state.acceleration.max_cap = config.max_acceleration
        self._state.jerk.max_cap = config.max_jerk
        self._tools = ToolchangeTable()
        self._x_offset, self._y_offset = config.plate_offset

    # ------------------------------------------------------------------
    # Filaments
    # ------------------------------------------------------------------

    @property
    def flavor(self) -> FirmwareFlavor:
        return self._flavor.flavor

    @property
    def extruders(self) -> list[Extruder]:
        return list(self._tools)

    @property
    def filament(self) -> Extruder | None:
        """Active filament, ``None`` before the first toolchange."""
        if self._state.current is None:
            return None
        return self._tools[self._state.current]

    @property
    def extruder_id(self) -> int | None:
        f = self.filament
        return f.extruder_id if f is not None else None

    def _active(self) -> Extruder:
        f = self.filament
        if f is None:
            raise GCodeError("No active filament; call toolchange() first")
        return f

    def set_extruders(self, filament_ids: Sequence[int]) -> None:
        """Declare the filaments used by this job.

        Multiple-extruder output (``T`` words) is enabled whenever any id
        above 0 is declared, even if only that one prints.
        """
        ids = sorted(set(int(i) for i in filament_ids))
        if not ids:
            raise GCodeError("At least one filament must be declared")

        shared = (
            ExtrusionState() if self._cfg.single_extruder_multi_material else None
        )
        self._tools = ToolchangeTable([
            Extruder(fid, self._cfg.extruder_for_filament(fid), self._cfg, shared)
            for fid in ids
        ])
        self._state.current = None
        self.multiple_extruders = ids[-1] > 0
        logger.debug(
            "Declared filaments %s (multiple_extruders=%s)",
            ids,
            self.multiple_extruders,
        )

    def init_extruder(self, filament_id: int) -> None:
        """Activate ``filament_id`` silently if nothing is active yet."""
        if self._state.current is None:
            self._state.current = self._tools.index_of(filament_id)

    def need_toolchange(self, filament_id: int) -> bool:
        f = self.filament
        return f is None or f.id != filament_id

    def toolchange(self, filament_id: int) -> str:
        """Switch to ``filament_id``.

        Returns the tool-select instruction (multiple extruders only)
        followed by a forced extrusion reset.  Switching to the active
        filament returns an empty string.

        Raises
        ------
        GCodeError
            If ``filament_id`` was not declared.
        """
        index = self._tools.index_of(filament_id)
        if self._state.current == index:
            return ""
        self._state.current = index
        extruder = self._tools[index]
        logger.debug(
            "Toolchange: filament %d on extruder %d",
            filament_id,
            extruder.extruder_id,
        )

        if not self.multiple_extruders:
            return ""
        return self._flavor.toolchange(filament_id) + self.reset_e(force=True)

    def set_extruder(self, filament_id: int) -> str:
        return self.toolchange(filament_id) if self.need_toolchange(filament_id) else ""

    # ------------------------------------------------------------------
    # Program framing
    # ------------------------------------------------------------------

    def preamble(self) -> str:
        gcode = self._flavor.units_and_positioning()
        if self._flavor.has_extrusion_mode:
            gcode += self._flavor.extrusion_mode(self._cfg.use_relative_e_distances)
            gcode += self.reset_e(force=True)
        return gcode

    def postamble(self) -> str:
        return self._flavor.program_end()

    def reset_e(self, force: bool = False) -> str:
        """Zero the extrusion accumulator.

        Emits ``G92 E0`` for absolute extrusion distances.  Without
        ``force``, an accumulator already at 0 is left alone.
        """
        if not self._flavor.supports_reset_e:
            return ""

        f = self.filament
        if f is not None:
            if f.e == 0.0 and not force:
                return ""
            f.reset_e()

        if self._cfg.use_relative_e_distances:
            return ""
        return self._flavor.reset_e()

    def update_progress(self, num: int, tot: int, allow_100: bool = False) -> str:
        if not self._flavor.supports_progress:
            return ""
        percent = int(math.floor(100.0 * num / tot + 0.5))
        if not allow_100:
            percent = min(percent, 99)
        return self._flavor.progress(percent)

    # ------------------------------------------------------------------
    # Temperatures and fans
    # ------------------------------------------------------------------

    def set_temperature(
        self, temperature: int, wait: bool = False, tool: int | None = None,
    ) -> str:
        multiple_tools = (
            self.multiple_extruders and not self._cfg.single_extruder_multi_material
        )
        return self._flavor.nozzle_temperature(temperature, wait, tool, multiple_tools)

    def set_bed_temperature(self, temperature: int, wait: bool = False) -> str:
        """Set the bed temperature; repeats of a reached target emit nothing."""
        cache = self._state.temperature
        if temperature == cache.bed and (not wait or cache.bed_reached):
            return ""
        cache.bed = temperature
        cache.bed_reached = wait
        return self._flavor.bed_temperature(temperature, wait)

    def set_chamber_temperature(self, temperature: int, wait: bool = False) -> str:
        return self._flavor.chamber_temperature(temperature, wait)

    def set_fan(self, speed: int) -> str:
        """Part-cooling fan at ``speed`` percent; unchanged speed emits nothing."""
        if speed == self._state.fan_speed:
            return ""
        self._state.fan_speed = speed
        return self._flavor.fan(speed)

    def set_additional_fan(self, speed: int) -> str:
        return self._flavor.additional_fan(speed)

    def set_exhaust_fan(self, speed: int, add_eol: bool = True) -> str:
        return self._flavor.exhaust_fan(speed, add_eol)

    # ------------------------------------------------------------------
    # Acceleration, jerk, pressure advance
    # ------------------------------------------------------------------

    def set_print_acceleration(self, acceleration: int) -> None:
        """Acceleration requested ahead of every extrusion move."""
        self._state.acceleration.print_acceleration = int(acceleration)

    def set_travel_accelerations(self, accelerations: Sequence[int]) -> None:
        """Per-extruder acceleration requested ahead of travel moves."""
        self._state.acceleration.travel_table = [int(a) for a in accelerations]

    def set_first_layer_travel_accelerations(self, accelerations: Sequence[int]) -> None:
        self._state.acceleration.first_layer_travel_table = [
            int(a) for a in accelerations
        ]

    def set_first_layer(self, is_first_layer: bool) -> None:
        self._state.is_first_layer = is_first_layer

    def reset_last_acceleration(self) -> None:
        """Forget the last emitted acceleration (e.g. after custom G-code)."""
        self._state.acceleration.last_emitted = 0

    def set_acceleration(self, acceleration: float) -> str:
        """Emit an acceleration change.

        The value is capped at the machine limit.  Zero, or the value
        already in effect, emits nothing.
        """
        acc = self._state.acceleration
        value = int(round(acceleration))
        capped = int(acc.clamp(value))
        if capped != value:
            logger.debug("Acceleration %d clamped to %d", value, capped)
        if capped == 0 or capped == acc.last_emitted:
            return ""
        acc.last_emitted = capped

        accel_to_decel = None
        if self.flavor is FirmwareFlavor.KLIPPER and self._cfg.accel_to_decel_enable:
            accel_to_decel = capped * self._cfg.accel_to_decel_factor / 100
        return self._flavor.acceleration(capped, accel_to_decel)

    def _extrude_acceleration(self) -> str:
        return self.set_acceleration(self._state.acceleration.print_acceleration)

    def _travel_acceleration(self) -> str:
        f = self.filament
        if f is None:
            return ""
        value = self._state.acceleration.travel_for(
            f.extruder_id, self._state.is_first_layer
        )
        if value is None:
            return ""
        return self.set_acceleration(value)

    def set_jerk_xy(self, jerk: float) -> str:
        """Emit an XY jerk (Klipper: square corner velocity) change."""
        cache = self._state.jerk
        capped = cache.clamp(jerk)
        if capped != jerk:
            logger.debug("Jerk %.3f clamped to %.3f", jerk, capped)
        if capped < 0.01 or abs(capped - cache.last_emitted) <= EPSILON:
            return ""
        cache.last_emitted = capped
        return self._flavor.jerk(capped)

    def set_pressure_advance(self, value: float) -> str:
        if value < 0:
            return ""
        return self._flavor.pressure_advance(value)

    # ------------------------------------------------------------------
    # Position
    # ------------------------------------------------------------------

    @property
    def position(self) -> np.ndarray:
        """Current position (writer frame), as a copy."""
        return self._state.position.copy()

    def set_position(self, point: Sequence[float]) -> None:
        self._state.position[:] = np.asarray(point, dtype=float)

    def set_xy_offset(self, x: float, y: float) -> None:
        self._x_offset = x
        self._y_offset = y

    @property
    def current_position_clear(self) -> bool:
        """``True`` once the head position is known to the writer."""
        return self._state.position_clear

    @current_position_clear.setter
    def current_position_clear(self, clear: bool) -> None:
        self._state.position_clear = clear

    @property
    def lifted_height(self) -> float:
        return self._state.lift.lifted

    @property
    def pending_lift(self) -> float:
        return self._state.lift.pending

    @property
    def pending_lift_kind(self) -> LiftType | None:
        return self._state.lift.pending_kind

    def _on_plate(self, x: float, y: float) -> tuple[float, float]:
        return x - self._x_offset, y - self._y_offset

    # ------------------------------------------------------------------
    # Feed rates
    # ------------------------------------------------------------------

    def set_speed(self, feed: float, comment: str = "", cooling_marker: str = "") -> str:
        """Emit a bare ``G1 F`` (mm/min)."""
        if not 0.0 < feed < _MAX_FEED_MM_MIN:
            raise GCodeError(f"Feed rate must be in (0, {_MAX_FEED_MM_MIN}), got {feed}")
        self._state.current_speed = feed
        w = G1Formatter()
        w.emit_f(feed)
        w.emit_comment(self.comments, comment)
        w.emit_string(cooling_marker)
        return w.string()

    def _travel_feed(self) -> float:
        f = self._active()
        return self._cfg.get_at("travel_speed", f.extruder_id) * 60.0

    def _z_feed(self, tool_change: bool = False) -> float:
        f = self._active()
        speed = self._cfg.get_at("travel_speed_z", f.extruder_id)
        if speed == 0.0:
            speed = self._cfg.get_at("travel_speed", f.extruder_id)
        if tool_change and self._cfg.prime_tower_lift_speed > 0:
            speed = self._cfg.prime_tower_lift_speed
        return speed * 60.0

    # ------------------------------------------------------------------
    # Travel
    # ------------------------------------------------------------------

    def travel_to_xy(self, point: Sequence[float], comment: str = "") -> str:
        pos = self._state.position
        pos[0], pos[1] = float(point[0]), float(point[1])
        self._state.position_clear = True

        w = G1Formatter()
        w.emit_xy(self._on_plate(pos[0], pos[1]))
        w.emit_f(self._travel_feed())
        w.emit_comment(self.comments, comment)
        return self._travel_acceleration() + w.string()

    def travel_to_xyz(self, point: Sequence[float], comment: str = "") -> str:
        """Travel to ``point``, realizing or absorbing any Z-hop.

        A target Z inside the window between layer height and the lifted
        height is reached without a Z move: only the owed lift shrinks.
        """
        pos = self._state.position
        lift = self._state.lift
        dest = np.asarray(point, dtype=float).copy()

        if abs(lift.pending) > EPSILON:
            return self._travel_with_pending_lift(dest, comment)

        if not self.will_move_z(dest[2]):
            nominal_z = pos[2] - lift.lifted
            lift.lifted -= dest[2] - nominal_z
            # z_hop == layer height leaves a near-zero residue
            if abs(lift.lifted) < EPSILON:
                lift.lifted = 0.0
            self._state.position_clear = True
            return self.travel_to_xy(dest[:2], comment)

        lift.lifted = 0.0
        x, y = self._on_plate(dest[0], dest[1])
        w = G1Formatter()
        if not self._state.position_clear:
            # unknown start: XY first, then Z
            w.emit_xy((x, y))
            w.emit_f(self._travel_feed())
            w.emit_comment(self.comments, comment)
            out = w.string() + self._move_z(dest[2], comment)
        else:
            w.emit_xyz((x, y, dest[2]))
            w.emit_f(self._travel_feed())
            w.emit_comment(self.comments, comment)
            out = w.string()

        pos[:] = dest
        self._state.position_clear = True
        return self._travel_acceleration() + out

    def _travel_with_pending_lift(self, dest: np.ndarray, comment: str) -> str:
        pos = self._state.position
        lift = self._state.lift
        kind = lift.pending_kind
        clear = self._state.position_clear

        # Skip the climb when the head is already exactly at the target.
        if (not clear or not np.array_equal(pos, dest)) and lift.pending + pos[2] > dest[2]:
            lift.lifted = lift.pending + pos[2] - dest[2]
            dest[2] = lift.pending + pos[2]
        lift.clear_pending()

        source = np.array([*self._on_plate(pos[0], pos[1]), pos[2]])
        target = np.array([*self._on_plate(dest[0], dest[1]), dest[2]])
        delta = target - source
        planar = delta[:2]
        distance = float(np.linalg.norm(planar))

        lift_move = ""
        # slope and spiral need a known start and some XY travel
        if delta[2] > 0 and distance != 0.0:
            if kind is LiftType.SPIRAL and clear:
                radius = delta[2] / (2 * math.pi * math.atan(self.slope_threshold))
                ij = radius * planar / distance
                logger.debug("Spiral lift %.3f mm, radius %.3f", delta[2], radius)
                lift_move = self._spiral_move_z(target[2], (-ij[1], ij[0]), "spiral lift Z")
            elif (
                kind is LiftType.SLOPE
                and clear
                and math.atan2(delta[2], distance) < self.slope_threshold
            ):
                run = planar / distance * delta[2] / math.tan(self.slope_threshold)
                top = source + np.array([run[0], run[1], delta[2]])
                logger.debug("Slope lift %.3f mm over %.3f mm", delta[2], np.linalg.norm(run))
                w = G1Formatter()
                w.emit_xyz(top)
                w.emit_f(self._travel_feed())
                w.emit_comment(self.comments, "slope lift Z")
                lift_move = w.string()
            elif kind is LiftType.NORMAL:
                lift_move = self._move_z(target[2], "normal lift Z")

        w = G1Formatter()
        if clear:
            w.emit_xyz(target)
            w.emit_f(self._travel_feed())
            w.emit_comment(self.comments, comment)
            move = w.string()
        else:
            w.emit_xy(target[:2])
            w.emit_f(self._travel_feed())
            w.emit_comment(self.comments, comment)
            move = w.string() + self._move_z(target[2], comment)

        pos[:] = dest
        self._state.position_clear = True
        return self._travel_acceleration() + lift_move + move

    def travel_to_z(self, z: float, comment: str = "") -> str:
        lift = self._state.lift
        if not self.will_move_z(z):
            nominal_z = self._state.position[2] - lift.lifted
            lift.lifted -= z - nominal_z
            if abs(lift.lifted) < EPSILON:
                lift.lifted = 0.0
            return ""

        lift.lifted = 0.0
        return self._travel_acceleration() + self._move_z(z, comment)

    def will_move_z(self, z: float) -> bool:
        """``False`` when reaching ``z`` needs no physical Z move."""
        lift = self._state.lift
        current_z = self._state.position[2]
        if lift.lifted > 0:
            nominal_z = current_z - lift.lifted
            if nominal_z <= z <= current_z:
                return False
        elif abs(current_z - z) < EPSILON:
            return False
        return True

    def _move_z(self, z: float, comment: str, tool_change: bool = False) -> str:
        self._state.position[2] = z
        w = G1Formatter()
        w.emit_z(z)
        w.emit_f(self._z_feed(tool_change))
        w.emit_comment(self.comments, comment)
        return self._travel_acceleration() + w.string()

    def _spiral_move_z(
        self,
        z: float,
        ij_offset: Sequence[float],
        comment: str,
        tool_change: bool = False,
    ) -> str:
        """Helical climb: one full counter-clockwise turn in the XY plane."""
        self._state.position[2] = z
        w = G2G3Formatter(is_ccw=True)
        w.emit_z(z)
        w.emit_ij(ij_offset)
        w.emit_string(" P1")
        w.emit_f(self._z_feed(tool_change))
        w.emit_comment(self.comments, comment)
        return self._travel_acceleration() + "G17\n" + w.string()

    # ------------------------------------------------------------------
    # Z-hop
    # ------------------------------------------------------------------

    def _target_lift(self, tool_change: bool) -> float:
        f = self._active()
        above = self._cfg.get_at("retract_lift_above", f.extruder_id)
        below = self._cfg.get_at("retract_lift_below", f.extruder_id)
        z = self._state.position[2]
        if not above <= z <= below:
            return 0.0
        if tool_change and self._cfg.prime_tower_lift_height > 0:
            return self._cfg.prime_tower_lift_height
        return self._cfg.get_at("z_hop", f.id)

    def lazy_lift(
        self,
        kind: LiftType = LiftType.NORMAL,
        spiral_vase: bool = False,
        tool_change: bool = False,
    ) -> str:
        """Record a Z-hop to be realized by the next :meth:`travel_to_xyz`.

        Repeated calls before :meth:`unlift` do nothing, even if Z was
        lowered manually in between.  In spiral-vase mode the lift is
        emitted straight away.
        """
        target = self._target_lift(tool_change)
        lift = self._state.lift
        if lift.lifted == 0 and lift.pending == 0 and target > 0:
            if spiral_vase:
                lift.lifted = target
                return self._move_z(
                    self._state.position[2] + target, "lift Z", tool_change
                )
            lift.pending = target
            lift.pending_kind = LiftType(kind)
        return ""

    def eager_lift(self, kind: LiftType = LiftType.NORMAL, tool_change: bool = False) -> str:
        """Lift now, e.g. before injected G-code such as a timelapse shot.

        A spiral climb is used only when the position is known; every
        other case is a straight Z move.
        """
        target = self._target_lift(tool_change)
        lift = self._state.lift
        to_lift = target - lift.lifted
        if to_lift < EPSILON:
            return ""

        z = self._state.position[2] + to_lift
        if LiftType(kind) is LiftType.SPIRAL and self._state.position_clear:
            radius = to_lift / (2 * math.pi * math.atan(self.slope_threshold))
            # no XY motion: centre sits `radius` to the right
            move = self._spiral_move_z(z, (radius, 0.0), "spiral lift Z", tool_change)
        else:
            move = self._move_z(z, "normal lift Z", tool_change)

        lift.lifted = target
        lift.clear_pending()
        return move

    def unlift(self) -> str:
        gcode = ""
        lift = self._state.lift
        if lift.lifted > 0:
            gcode = self._move_z(
                self._state.position[2] - lift.lifted, "restore layer Z"
            )
            lift.lifted = 0.0
        lift.clear_pending()
        return gcode

    # ------------------------------------------------------------------
    # Extrusion
    # ------------------------------------------------------------------

    def extrude_to_xy(
        self,
        point: Sequence[float],
        de: float,
        comment: str = "",
        force_no_extrusion: bool = False,
    ) -> str:
        pos = self._state.position
        pos[0], pos[1] = float(point[0]), float(point[1])
        f = self._active()
        if not force_no_extrusion:
            f.extrude(de)

        w = G1Formatter()
        w.emit_xy(self._on_plate(pos[0], pos[1]))
        if not force_no_extrusion:
            w.emit_e(f.e)
        w.emit_comment(self.comments, comment)
        return self._extrude_acceleration() + w.string()

    def extrude_arc_to_xy(
        self,
        point: Sequence[float],
        center_offset: Sequence[float],
        de: float,
        is_ccw: bool,
        comment: str = "",
        force_no_extrusion: bool = False,
    ) -> str:
        """Extrude along an arc (``G2``/``G3``) ending at ``point``.

        ``center_offset`` is the I/J offset from the current position to
        the arc centre.
        """
        pos = self._state.position
        pos[0], pos[1] = float(point[0]), float(point[1])
        f = self._active()
        if not force_no_extrusion:
            f.extrude(de)

        w = G2G3Formatter(is_ccw)
        w.emit_xy(self._on_plate(pos[0], pos[1]))
        w.emit_ij(center_offset)
        if not force_no_extrusion:
            w.emit_e(f.e)
        w.emit_comment(self.comments, comment)
        return self._extrude_acceleration() + w.string()

    def extrude_to_xyz(
        self,
        point: Sequence[float],
        de: float,
        comment: str = "",
        force_no_extrusion: bool = False,
    ) -> str:
        pos = self._state.position
        pos[:] = np.asarray(point, dtype=float)
        self._state.lift.lifted = 0.0
        f = self._active()
        if not force_no_extrusion:
            f.extrude(de)

        w = G1Formatter()
        w.emit_xyz((*self._on_plate(pos[0], pos[1]), pos[2]))
        if not force_no_extrusion:
            w.emit_e(f.e)
        w.emit_comment(self.comments, comment)
        return self._extrude_acceleration() + w.string()

    # ------------------------------------------------------------------
    # Retraction
    # ------------------------------------------------------------------

    def retract(self, before_wipe: bool = False) -> str:
        """Retract by the filament's retraction length.

        With ``before_wipe`` only the configured before-wipe fraction is
        pulled; the wipe move retracts the rest.
        """
        f = self._active()
        factor = f.retract_before_wipe if before_wipe else 1.0
        return self._retract(
            factor * f.retraction_length,
            factor * f.retract_restart_extra,
            "retract",
        )

    def retract_for_toolchange(self, before_wipe: bool = False) -> str:
        f = self._active()
        factor = f.retract_before_wipe if before_wipe else 1.0
        return self._retract(
            factor * f.retract_length_toolchange,
            factor * f.retract_restart_extra_toolchange,
            "retract for toolchange",
        )

    def _retract(self, length: float, restart_extra: float, comment: str) -> str:
        f = self._active()
        gcode = ""
        firmware = self._cfg.use_firmware_retraction
        if firmware:
            # firmware owns the real length; track a unit retraction
            length = 1.0

        if f.retract(length, restart_extra) != 0:
            if firmware:
                gcode = self._flavor.firmware_retract()
            else:
                w = G1Formatter()
                w.emit_e(f.e)
                w.emit_f(f.retract_speed * 60.0)
                w.emit_comment(self.comments, comment)
                gcode = w.string()

        if self.flavor is FirmwareFlavor.MAKERWARE:
            gcode += self._flavor.extruder_off()
        return gcode

    def unretract(self) -> str:
        f = self._active()
        gcode = ""
        if self.flavor is FirmwareFlavor.MAKERWARE:
            gcode = self._flavor.extruder_on()

        if f.unretract() != 0:
            if self._cfg.use_firmware_retraction:
                gcode += self._flavor.firmware_unretract()
                gcode += self.reset_e()
            else:
                # G1, not G0: G0 would blend the restart into the travel
                w = G1Formatter()
                w.emit_e(f.e)
                w.emit_f(f.deretract_speed * 60.0)
                w.emit_comment(self.comments, "unretract")
                gcode += w.string()
        return gcode
