"""Fixed-decimal axis formatting and G-code line builders.

Every numeric word in the output stream passes through
:func:`format_axis`.  The downstream time estimator re-parses these
lines, so the text must be exact:

    - a single space, the axis letter, then the value
    - round half away from zero at the requested digit count
    - trailing fractional zeros and a bare decimal point are stripped
    - a value that rounds to zero is written ``0``, never ``-0``
    - no exponent, no locale separators

Values below one keep no leading zero (``E.02456``), which every
supported firmware accepts and which keeps extrusion lines short.

Digit counts:
    ``XYZF_EXPORT_DIGITS`` (3) for coordinates, arc offsets and feed
    rates, ``E_EXPORT_DIGITS`` (5) for extrusion.
"""

from __future__ import annotations

import math
from typing import Sequence

XYZF_EXPORT_DIGITS = 3
E_EXPORT_DIGITS = 5

_POW10 = tuple(10**i for i in range(10))


class GCodeError(Exception):
    """Raised when a G-code request violates the writer's contract."""

    pass


# ---------------------------------------------------------------------------
# Number formatting
# ---------------------------------------------------------------------------


def _round_half_away(value: float) -> int:
    magnitude = abs(value)
    whole = math.floor(magnitude)
    if magnitude - whole >= 0.5:
        whole += 1
    return -int(whole) if value < 0 else int(whole)


def format_axis(axis: str, value: float, digits: int) -> str:
    """Render ``value`` as `` <axis><number>`` with at most ``digits`` decimals.

    Parameters
    ----------
    axis : str
        Single axis letter (``X``, ``E``, ``F`` ...).
    value : float
        Finite value to render.
    digits : int
        Decimal places before trimming, 0..9.

    Returns
    -------
    str
        E.g. ``format_axis("X", 12.5, 3) == " X12.5"``,
        ``format_axis("E", -0.000001, 5) == " E0"``.

    Raises
    ------
    GCodeError
        If ``digits`` is outside 0..9 or ``value`` is not finite.
    """
    if not 0 <= digits <= 9:
        raise GCodeError(f"digits must be in [0, 9], got {digits}")
    if not math.isfinite(value):
        raise GCodeError(f"{axis} value must be finite, got {value}")

    scaled = _round_half_away(float(value) * _POW10[digits])
    if scaled == 0:
        return f" {axis}0"

    text = str(abs(scaled)).rjust(digits, "0")
    split = len(text) - digits
    whole, frac = text[:split], text[split:].rstrip("0")
    number = f"{whole}.{frac}" if frac else whole
    sign = "-" if scaled < 0 else ""
    return f" {axis}{sign}{number}"


# ---------------------------------------------------------------------------
# Line builders
# ---------------------------------------------------------------------------


class GCodeFormatter:
    """Accumulate the words of one G-code line.

    Parameters
    ----------
    command : str
        Leading command word (``G1``, ``G2`` ...).  Empty for a bare
        word list.
    """

    def __init__(self, command: str = "") -> None:
        self._parts: list[str] = [command]

    def emit_axis(self, axis: str, value: float, digits: int) -> None:
        self._parts.append(format_axis(axis, value, digits))

    def emit_xy(self, point: Sequence[float]) -> None:
        self.emit_axis("X", point[0], XYZF_EXPORT_DIGITS)
        self.emit_axis("Y", point[1], XYZF_EXPORT_DIGITS)

    def emit_xyz(self, point: Sequence[float]) -> None:
        self.emit_xy(point)
        self.emit_axis("Z", point[2], XYZF_EXPORT_DIGITS)

    def emit_z(self, z: float) -> None:
        self.emit_axis("Z", z, XYZF_EXPORT_DIGITS)

    def emit_e(self, e: float) -> None:
        self.emit_axis("E", e, E_EXPORT_DIGITS)

    def emit_f(self, speed: float) -> None:
        """Emit a feed rate in mm/min.  Non-positive feeds are rejected."""
        if not speed > 0:
            raise GCodeError(f"feed rate must be > 0, got {speed}")
        self.emit_axis("F", speed, XYZF_EXPORT_DIGITS)

    def emit_string(self, text: str) -> None:
        self._parts.append(text)

    def emit_comment(self, allow_comments: bool, comment: str) -> None:
        if allow_comments and comment:
            self._parts.append(f" ; {comment}")

    def string(self) -> str:
        """Return the finished line, newline-terminated."""
        return "".join(self._parts) + "\n"


class G1Formatter(GCodeFormatter):
    """Linear move (``G1``)."""

    def __init__(self) -> None:
        super().__init__("G1")


class G2G3Formatter(GCodeFormatter):
    """Arc move: ``G3`` when counter-clockwise, ``G2`` otherwise."""

    def __init__(self, is_ccw: bool) -> None:
        super().__init__("G3" if is_ccw else "G2")

    def emit_ij(self, offset: Sequence[float]) -> None:
        self.emit_axis("I", offset[0], XYZF_EXPORT_DIGITS)
        self.emit_axis("J", offset[1], XYZF_EXPORT_DIGITS)
