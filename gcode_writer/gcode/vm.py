"""Offline G-code re-parser for dry runs and round-trip checks.

Reads the text the writer emits and recovers what a printer host would
see: coordinates, feed rates, extrusion deltas, tool selection and an
estimated print time.  Used by the export script's ``--dry-run`` summary
and by the tests to verify that formatted numbers parse back losslessly.

Tracks:
    - Current position (X, Y, Z) and modal feed (F in mm/min)
    - Extrusion accumulator in absolute (M82) or relative (M83) mode
    - ``G92`` resets, ``G2``/``G3`` arcs (including ``P`` full turns)
    - Firmware retracts (``G10``, ``G22``)
    - Active tool (``T<n>``, ``M135 T<n>``, ``M108 T<n>``, ``M1020 S<n>``)

Usage::

    vm = GCodeVM()
    vm.load_string(gcode)
    result = vm.run()
    print(f"Estimated time: {result['time_estimate_s']:.1f}s")
"""

from __future__ import annotations

import logging
import math
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_WORD = re.compile(r"([A-Z])\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+))")
_COMMAND = re.compile(r"^([GMT])(\d+)")


def parse_line(line: str) -> tuple[str | None, dict[str, float]]:
    """Split one line into its command word and numeric parameters.

    Parameters
    ----------
    line : str
        Raw G-code line, comments allowed.

    Returns
    -------
    tuple[str | None, dict[str, float]]
        ``("G1", {"X": 10.0, "E": 0.02})``.  The command is ``None`` for
        blank lines, pure comments and non-G/M/T lines (Klipper macros).

    Notes
    -----
    Accepts numbers without a leading zero (``E.02456``).
    """
    code = line.split(";", 1)[0].strip().upper()
    if not code:
        return None, {}

    match = _COMMAND.match(code)
    if match is None:
        return None, {}
    command = f"{match.group(1)}{int(match.group(2))}"

    rest = code[match.end():]
    words = {axis: float(value) for axis, value in _WORD.findall(rest)}
    if match.group(1) == "T":
        words["T"] = float(match.group(2))
    return command, words


class GCodeVM:
    """Offline G-code virtual machine.

    Parameters
    ----------
    accel_mm_s2 : float | None
        Acceleration for a trapezoidal motion profile, ``None`` for
        constant velocity.
    default_feed : float
        Modal feed (mm/min) until the first ``F`` word.

    Attributes
    ----------
    pos : tuple[float, float, float]
        Current position in mm.
    e : float
        Extrusion accumulator as the firmware sees it.
    filament_used : float
        Net filament pushed (mm), retractions included.
    """

    def __init__(
        self,
        accel_mm_s2: float | None = None,
        default_feed: float = 3000.0,
    ) -> None:
        self.accel_mm_s2 = accel_mm_s2
        self.default_feed = default_feed
        self.gcode_lines: list[str] = []
        self.reset()

    def reset(self) -> None:
        """Reset VM state to the power-on defaults."""
        self.pos: tuple[float, float, float] = (0.0, 0.0, 0.0)
        self.feed: float = self.default_feed
        self.absolute_mode: bool = True
        self.relative_e: bool = False
        self.e: float = 0.0
        self.filament_used: float = 0.0
        self.tool: int | None = None

        self.total_time: float = 0.0
        self.move_count: int = 0
        self.extrude_moves: int = 0
        self.arc_moves: int = 0
        self.firmware_retracts: int = 0
        self.errors: list[str] = []

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_file(self, path: str | Path) -> None:
        """Load G-code from a file.

        Raises
        ------
        FileNotFoundError
            If file doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"G-code file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            self.gcode_lines = f.readlines()

        logger.info("Loaded %d G-code lines from %s", len(self.gcode_lines), path)

    def load_string(self, gcode: str) -> None:
        self.gcode_lines = gcode.splitlines(keepends=True)
        logger.debug("Loaded %d G-code lines from string", len(self.gcode_lines))

    # ------------------------------------------------------------------
    # Kinematics
    # ------------------------------------------------------------------

    def estimate_move_time(self, dist: float, feed_mm_min: float) -> float:
        """Time (s) for a move of ``dist`` mm at ``feed_mm_min``.

        Uses a trapezoidal profile when ``accel_mm_s2`` is set.
        """
        if dist < 1e-6 or feed_mm_min <= 0:
            return 0.0

        feed_mm_s = feed_mm_min / 60.0
        if self.accel_mm_s2 is None:
            return dist / feed_mm_s

        t_accel = feed_mm_s / self.accel_mm_s2
        d_accel = 0.5 * self.accel_mm_s2 * t_accel * t_accel
        if 2 * d_accel >= dist:
            # triangle profile, target speed never reached
            return 2.0 * math.sqrt(dist / self.accel_mm_s2)
        return 2 * t_accel + (dist - 2 * d_accel) / feed_mm_s

    def _target(self, words: dict[str, float]) -> tuple[float, float, float]:
        if self.absolute_mode:
            return (
                words.get("X", self.pos[0]),
                words.get("Y", self.pos[1]),
                words.get("Z", self.pos[2]),
            )
        return (
            self.pos[0] + words.get("X", 0.0),
            self.pos[1] + words.get("Y", 0.0),
            self.pos[2] + words.get("Z", 0.0),
        )

    def _apply_e(self, words: dict[str, float]) -> float:
        if "E" not in words:
            return 0.0
        if self.relative_e:
            de = words["E"]
            self.e += de
        else:
            de = words["E"] - self.e
            self.e = words["E"]
        self.filament_used += de
        return de

    def _linear(self, words: dict[str, float]) -> None:
        if "F" in words:
            self.feed = words["F"]
        end = self._target(words)
        de = self._apply_e(words)
        self.total_time += self.estimate_move_time(math.dist(self.pos, end), self.feed)
        self.pos = end
        self.move_count += 1
        if de > 0:
            self.extrude_moves += 1

    def _arc(self, words: dict[str, float], ccw: bool) -> None:
        """Helical or planar arc in the XY plane.

        An arc ending where it starts is a full circle; ``P`` adds
        complete turns to a partial arc.
        """
        if "F" in words:
            self.feed = words["F"]
        start = self.pos
        end = self._target(words)
        cx = start[0] + words.get("I", 0.0)
        cy = start[1] + words.get("J", 0.0)
        radius = math.hypot(start[0] - cx, start[1] - cy)

        a0 = math.atan2(start[1] - cy, start[0] - cx)
        a1 = math.atan2(end[1] - cy, end[0] - cx)
        turns = int(words.get("P", 0))
        if math.isclose(start[0], end[0], abs_tol=1e-6) and math.isclose(
            start[1], end[1], abs_tol=1e-6
        ):
            sweep = 2 * math.pi * max(turns, 1)
        else:
            sweep = (a1 - a0) if ccw else (a0 - a1)
            if sweep <= 0:
                sweep += 2 * math.pi
            sweep += 2 * math.pi * turns

        length = math.hypot(radius * sweep, end[2] - start[2])
        self._apply_e(words)
        self.total_time += self.estimate_move_time(length, self.feed)
        self.pos = end
        self.move_count += 1
        self.arc_moves += 1

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute_line(self, line: str) -> None:
        """Execute a single G-code line, updating position, E and time."""
        command, words = parse_line(line)
        if command is None:
            return

        if command in ("G0", "G1"):
            self._linear(words)
        elif command in ("G2", "G3"):
            self._arc(words, ccw=command == "G3")
        elif command == "G90":
            self.absolute_mode = True
        elif command == "G91":
            self.absolute_mode = False
        elif command == "G92":
            x, y, z = self.pos
            self.pos = (words.get("X", x), words.get("Y", y), words.get("Z", z))
            if "E" in words:
                self.e = words["E"]
        elif command == "M82":
            self.relative_e = False
        elif command == "M83":
            self.relative_e = True
        elif command in ("G10", "G22") and "S" not in words:
            # G10 with S is a RepRapFirmware temperature, not a retract
            self.firmware_retracts += 1
        elif command in ("M135", "M108") and "T" in words:
            self.tool = int(words["T"])
        elif command == "M1020" and "S" in words:
            self.tool = int(words["S"])
        elif command.startswith("T"):
            self.tool = int(words["T"])

    def run(self) -> dict[str, Any]:
        """Execute loaded G-code and return a summary.

        Returns
        -------
        dict[str, Any]
            ``time_estimate_s``, ``move_count``, ``extrude_moves``,
            ``arc_moves``, ``filament_used_mm``, ``firmware_retracts``,
            ``final_pos``, ``tool`` and ``errors``.

        Raises
        ------
        RuntimeError
            If no G-code loaded
        """
        if not self.gcode_lines:
            raise RuntimeError("No G-code loaded, call load_file() or load_string() first")

        self.reset()
        for i, line in enumerate(self.gcode_lines):
            try:
                self.execute_line(line)
            except ValueError as e:
                msg = f"Error at line {i + 1}: {line.strip()}: {e}"
                logger.error(msg)
                self.errors.append(msg)

        logger.info(
            "VM execution complete: %d moves, %.1fs estimated",
            self.move_count,
            self.total_time,
        )
        return {
            "time_estimate_s": self.total_time,
            "move_count": self.move_count,
            "extrude_moves": self.extrude_moves,
            "arc_moves": self.arc_moves,
            "filament_used_mm": self.filament_used,
            "firmware_retracts": self.firmware_retracts,
            "final_pos": self.pos,
            "tool": self.tool,
            "errors": self.errors,
        }
