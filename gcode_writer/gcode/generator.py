"""G-code generator -- Job IR operations to a complete program.

Each job (or each plate of a multi-plate job) gets its own
:class:`~gcode_writer.gcode.writer.GCodeWriter`, so no machine state
leaks from one program into the next.  Within a job, operations are
dispatched to the writer strictly in list order.

Program layout::

    <preamble>        G90/G21, extrusion mode, E reset
    <operations>
    <postamble>       M2 on Machinekit, otherwise nothing

Filaments:
    The writer must know every filament before the first toolchange.
    Unless the caller passes them explicitly, they are collected from
    the ``SelectFilament`` operations; a job with none prints with
    filament 0 (or the lowest declared id), activated silently
    before the first operation.  A job that does select filaments must
    do so before its first motion.
"""

from __future__ import annotations

import logging
from io import StringIO
from typing import Sequence

from gcode_writer.configs.loader import PrintConfig
from gcode_writer.gcode.formatter import GCodeError
from gcode_writer.gcode.writer import GCodeWriter
from gcode_writer.job_ir.operations import (
    Comment,
    ExtrudeArc,
    ExtrudeTo,
    Lift,
    Operation,
    ResetExtrusion,
    Retract,
    SelectFilament,
    SetAcceleration,
    SetBedTemperature,
    SetChamberTemperature,
    SetFan,
    SetFirstLayer,
    SetFirstLayerTravelAccelerations,
    SetJerk,
    SetPressureAdvance,
    SetPrintAcceleration,
    SetTemperature,
    SetTravelAccelerations,
    TravelTo,
    TravelToZ,
    Unlift,
    Unretract,
    UpdateProgress,
)
from gcode_writer.utils.logging_config import pop_context, push_context

logger = logging.getLogger(__name__)


def collect_filaments(operations: Sequence[Operation]) -> list[int]:
    """Sorted filament ids referenced by ``SelectFilament`` ops, or ``[0]``."""
    ids = {op.filament_id for op in operations if isinstance(op, SelectFilament)}
    return sorted(ids) if ids else [0]


class GCodeGenerator:
    """Convert Job IR operations to G-code.

    Parameters
    ----------
    config : PrintConfig
        Validated configuration shared by every program this generator
        produces.  Only the writer state is per-program.
    """

    def __init__(self, config: PrintConfig) -> None:
        self._cfg = config
        self._writer: GCodeWriter | None = None

    @property
    def writer(self) -> GCodeWriter | None:
        """Writer of the most recent program (``None`` before the first)."""
        return self._writer

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(
        self,
        operations: Sequence[Operation],
        filaments: Sequence[int] | None = None,
    ) -> str:
        """Generate a complete program for one job.

        Parameters
        ----------
        operations : Sequence[Operation]
            Job IR operations in machine execution order.
        filaments : Sequence[int] | None
            Declared filament ids.  ``None`` (or empty) infers them.

        Returns
        -------
        str
            Complete G-code program including preamble and postamble.

        Raises
        ------
        GCodeError
            If an operation violates the writer contract, e.g. selects
            an undeclared filament.
        """
        ids = list(filaments) if filaments else collect_filaments(operations)
        logger.info(
            "Generating G-code: %d operations, filaments %s, flavor %s",
            len(operations),
            ids,
            self._cfg.gcode_flavor.value,
        )

        writer = GCodeWriter(self._cfg)
        writer.set_extruders(ids)
        if not any(isinstance(op, SelectFilament) for op in operations):
            writer.init_extruder(ids[0])
        self._writer = writer

        buf = StringIO()
        buf.write(writer.preamble())
        for op in operations:
            buf.write(self._generate_op(writer, op))
        buf.write(writer.postamble())

        gcode = buf.getvalue()
        logger.info("G-code generated: %d lines", gcode.count("\n"))
        return gcode

    def generate_plates(
        self,
        plates: Sequence[Sequence[Operation]],
        filaments: Sequence[int] | None = None,
    ) -> list[str]:
        """Generate one independent program per plate.

        Log records emitted while a plate is generated carry its 1-based
        number as the ``plate`` context field.
        """
        programs = []
        try:
            for index, plate in enumerate(plates):
                push_context(plate=index + 1)
                logger.info("Plate %d/%d", index + 1, len(plates))
                programs.append(self.generate(plate, filaments))
        finally:
            pop_context(keys=["plate"])
        return programs

    # ------------------------------------------------------------------
    # Internal: per-operation dispatch
    # ------------------------------------------------------------------

    def _generate_op(self, w: GCodeWriter, op: Operation) -> str:
        if isinstance(op, SelectFilament):
            return w.toolchange(op.filament_id)
        elif isinstance(op, TravelTo):
            if op.z is None:
                return w.travel_to_xy((op.x, op.y), op.comment)
            return w.travel_to_xyz((op.x, op.y, op.z), op.comment)
        elif isinstance(op, TravelToZ):
            return w.travel_to_z(op.z, op.comment)
        elif isinstance(op, ExtrudeTo):
            if op.z is None:
                return w.extrude_to_xy((op.x, op.y), op.e, op.comment, op.no_extrusion)
            return w.extrude_to_xyz(
                (op.x, op.y, op.z), op.e, op.comment, op.no_extrusion
            )
        elif isinstance(op, ExtrudeArc):
            return w.extrude_arc_to_xy(
                (op.x, op.y), (op.i, op.j), op.e, op.ccw, op.comment, op.no_extrusion
            )
        elif isinstance(op, Retract):
            if op.toolchange:
                return w.retract_for_toolchange(op.before_wipe)
            return w.retract(op.before_wipe)
        elif isinstance(op, Unretract):
            return w.unretract()
        elif isinstance(op, Lift):
            if op.eager:
                return w.eager_lift(op.kind, op.tool_change)
            return w.lazy_lift(op.kind, op.spiral_vase, op.tool_change)
        elif isinstance(op, Unlift):
            return w.unlift()
        elif isinstance(op, ResetExtrusion):
            return w.reset_e(op.force)
        elif isinstance(op, SetTemperature):
            return w.set_temperature(op.temperature, op.wait, op.tool)
        elif isinstance(op, SetBedTemperature):
            return w.set_bed_temperature(op.temperature, op.wait)
        elif isinstance(op, SetChamberTemperature):
            return w.set_chamber_temperature(op.temperature, op.wait)
        elif isinstance(op, SetFan):
            return w.set_fan(op.speed)
        elif isinstance(op, SetAcceleration):
            return w.set_acceleration(op.acceleration)
        elif isinstance(op, SetPrintAcceleration):
            w.set_print_acceleration(op.acceleration)
            return ""
        elif isinstance(op, SetTravelAccelerations):
            w.set_travel_accelerations(op.accelerations)
            return ""
        elif isinstance(op, SetFirstLayerTravelAccelerations):
            w.set_first_layer_travel_accelerations(op.accelerations)
            return ""
        elif isinstance(op, SetJerk):
            return w.set_jerk_xy(op.jerk)
        elif isinstance(op, SetPressureAdvance):
            return w.set_pressure_advance(op.value)
        elif isinstance(op, SetFirstLayer):
            w.set_first_layer(op.first_layer)
            return ""
        elif isinstance(op, UpdateProgress):
            return w.update_progress(op.num, op.tot, op.allow_100)
        elif isinstance(op, Comment):
            return f"; {op.text}\n"
        elif isinstance(op, Operation):
            logger.warning("Unsupported operation: %s", type(op).__name__)
            return ""
        raise GCodeError(f"Not an operation: {op!r}")
