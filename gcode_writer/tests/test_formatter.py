"""Tests for fixed-decimal axis formatting and line builders.

Validates trimming, negative-zero correction, half-away rounding, and
that every rendered number parses back within half a unit of the last
digit.
"""

from __future__ import annotations

import math

import pytest

from gcode_writer.gcode.formatter import (
    E_EXPORT_DIGITS,
    XYZF_EXPORT_DIGITS,
    G1Formatter,
    G2G3Formatter,
    GCodeError,
    GCodeFormatter,
    format_axis,
)
from gcode_writer.gcode.vm import parse_line


# ---------------------------------------------------------------------------
# format_axis
# ---------------------------------------------------------------------------


class TestFormatAxis:
    @pytest.mark.parametrize(
        "value, digits, expected",
        [
            (12.5, 3, " X12.5"),
            (1.0, 3, " X1"),
            (100.0, 0, " X100"),
            (0.1 + 0.2, 3, " X.3"),
            (1234.5678, 2, " X1234.57"),
            (-1.5, 3, " X-1.5"),
            (-0.25, 3, " X-.25"),
            (2.5, 0, " X3"),
            (-2.5, 0, " X-3"),
            (0.0, 3, " X0"),
        ],
    )
    def test_rendering(self, value: float, digits: int, expected: str) -> None:
        assert format_axis("X", value, digits) == expected

    def test_small_extrusion_has_no_leading_zero(self) -> None:
        assert format_axis("E", 0.02456, E_EXPORT_DIGITS) == " E.02456"

    def test_negative_zero_is_zero(self) -> None:
        assert format_axis("E", -0.000001, 5) == " E0"
        assert format_axis("X", -0.0004, 3) == " X0"
        assert format_axis("X", -0.0, 3) == " X0"

    def test_never_more_digits_than_requested(self) -> None:
        text = format_axis("Y", 1 / 3, 4)
        assert text == " Y.3333"

    def test_nine_digits(self) -> None:
        assert format_axis("E", 1.123456789, 9) == " E1.123456789"

    def test_digits_out_of_range(self) -> None:
        with pytest.raises(GCodeError, match="digits"):
            format_axis("X", 1.0, 10)
        with pytest.raises(GCodeError, match="digits"):
            format_axis("X", 1.0, -1)

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite(self, value: float) -> None:
        with pytest.raises(GCodeError, match="finite"):
            format_axis("X", value, 3)

    @pytest.mark.parametrize(
        "value",
        [0.0001, -0.0001, 0.0123456, 99999.9999, -54321.98765, 7.0, 0.5, 123.4545],
    )
    @pytest.mark.parametrize("digits", [0, 3, 5, 9])
    def test_parses_back_within_half_unit(self, value: float, digits: int) -> None:
        text = format_axis("X", value, digits)
        assert text != " X-0"
        _, words = parse_line("G1" + text)
        assert abs(words["X"] - value) <= 0.5 * 10**-digits + 1e-9
        frac = text.partition(".")[2]
        assert len(frac) <= digits
        assert not frac.endswith("0")
        assert not text.endswith(".")


# ---------------------------------------------------------------------------
# Line builders
# ---------------------------------------------------------------------------


class TestFormatters:
    def test_g1_xy_e(self) -> None:
        w = G1Formatter()
        w.emit_xy((10.0, 20.125))
        w.emit_e(0.5)
        assert w.string() == "G1 X10 Y20.125 E.5\n"

    def test_xyz_and_feed(self) -> None:
        w = G1Formatter()
        w.emit_xyz((1.0, 2.0, 0.2))
        w.emit_f(12000.0)
        assert w.string() == "G1 X1 Y2 Z.2 F12000\n"

    def test_default_digits(self) -> None:
        assert XYZF_EXPORT_DIGITS == 3
        assert E_EXPORT_DIGITS == 5

    def test_feed_must_be_positive(self) -> None:
        w = G1Formatter()
        with pytest.raises(GCodeError, match="feed rate"):
            w.emit_f(0.0)
        with pytest.raises(GCodeError, match="feed rate"):
            w.emit_f(-60.0)

    def test_comment_gated(self) -> None:
        w = G1Formatter()
        w.emit_z(0.3)
        w.emit_comment(False, "hidden")
        assert w.string() == "G1 Z.3\n"

        w = G1Formatter()
        w.emit_z(0.3)
        w.emit_comment(True, "layer change")
        assert w.string() == "G1 Z.3 ; layer change\n"

    def test_empty_comment_not_emitted(self) -> None:
        w = G1Formatter()
        w.emit_z(1.0)
        w.emit_comment(True, "")
        assert w.string() == "G1 Z1\n"

    def test_arc_direction(self) -> None:
        cw = G2G3Formatter(is_ccw=False)
        cw.emit_xy((10.0, 0.0))
        cw.emit_ij((5.0, 0.0))
        assert cw.string() == "G2 X10 Y0 I5 J0\n"

        ccw = G2G3Formatter(is_ccw=True)
        ccw.emit_ij((-1.5, 2.0))
        assert ccw.string() == "G3 I-1.5 J2\n"

    def test_bare_formatter(self) -> None:
        w = GCodeFormatter()
        w.emit_string("M400")
        assert w.string() == "M400\n"
