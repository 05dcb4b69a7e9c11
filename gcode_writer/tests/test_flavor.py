"""Tests for firmware flavor dispatch.

Each dialect table is checked against the exact instruction text the
firmware expects.
"""

from __future__ import annotations

import pytest

from gcode_writer.gcode.flavor import FirmwareFlavor, FlavorDispatch

F = FirmwareFlavor


def dispatch(flavor: FirmwareFlavor, comments: bool = False) -> FlavorDispatch:
    return FlavorDispatch(flavor, comments)


# ---------------------------------------------------------------------------
# Enum
# ---------------------------------------------------------------------------


class TestFirmwareFlavor:
    def test_from_config_value(self) -> None:
        assert FirmwareFlavor("klipper") is F.KLIPPER
        assert FirmwareFlavor("no-extrusion") is F.NO_EXTRUSION
        assert FirmwareFlavor("marlin2") is F.MARLIN_FIRMWARE

    def test_unknown_value(self) -> None:
        with pytest.raises(ValueError):
            FirmwareFlavor("grbl")

    @pytest.mark.parametrize("flavor", [F.MARLIN_LEGACY, F.MARLIN_FIRMWARE, F.KLIPPER, F.BBL])
    def test_marlin_family(self, flavor: FirmwareFlavor) -> None:
        assert flavor.is_marlin_family

    @pytest.mark.parametrize("flavor", [F.REPRAP_FIRMWARE, F.REPETIER, F.SMOOTHIE, F.MACH3])
    def test_not_marlin_family(self, flavor: FirmwareFlavor) -> None:
        assert not flavor.is_marlin_family

    def test_makerbot(self) -> None:
        assert F.MAKERWARE.is_makerbot
        assert F.SAILFISH.is_makerbot
        assert not F.MARLIN_LEGACY.is_makerbot


# ---------------------------------------------------------------------------
# Capabilities and framing
# ---------------------------------------------------------------------------


class TestFraming:
    def test_units(self) -> None:
        assert dispatch(F.MARLIN_LEGACY).units_and_positioning() == "G90\nG21\n"
        assert dispatch(F.MAKERWARE).units_and_positioning() == ""

    def test_units_with_comments(self) -> None:
        assert dispatch(F.MARLIN_LEGACY, comments=True).units_and_positioning() == (
            "G90 ; absolute coordinates\nG21 ; units in millimeters\n"
        )

    def test_extrusion_mode(self) -> None:
        d = dispatch(F.KLIPPER)
        assert d.extrusion_mode(relative=True) == "M83\n"
        assert d.extrusion_mode(relative=False) == "M82\n"

    @pytest.mark.parametrize("flavor", [F.MAKERWARE, F.SAILFISH, F.MACH3, F.MACHINEKIT, F.NO_EXTRUSION])
    def test_no_extrusion_mode(self, flavor: FirmwareFlavor) -> None:
        assert not dispatch(flavor).has_extrusion_mode

    @pytest.mark.parametrize("flavor", [F.MACH3, F.MAKERWARE, F.SAILFISH])
    def test_no_reset_e(self, flavor: FirmwareFlavor) -> None:
        assert not dispatch(flavor).supports_reset_e

    def test_reset_e(self) -> None:
        assert dispatch(F.MARLIN_LEGACY).reset_e() == "G92 E0\n"
        assert dispatch(F.MACHINEKIT).supports_reset_e

    def test_progress_support(self) -> None:
        assert dispatch(F.SAILFISH).supports_progress
        assert not dispatch(F.KLIPPER).supports_progress
        assert dispatch(F.MAKERWARE).progress(42) == "M73 P42\n"

    def test_program_end(self) -> None:
        assert dispatch(F.MACHINEKIT).program_end() == "M2\n"
        assert dispatch(F.MARLIN_LEGACY).program_end() == ""


# ---------------------------------------------------------------------------
# Temperatures
# ---------------------------------------------------------------------------


class TestTemperatures:
    @pytest.mark.parametrize(
        "flavor, wait, tool, multiple, expected",
        [
            (F.MARLIN_LEGACY, False, None, False, "M104 S210\n"),
            (F.MARLIN_LEGACY, True, None, False, "M109 S210\n"),
            (F.MARLIN_LEGACY, False, 1, True, "M104 S210 T1\n"),
            (F.MARLIN_LEGACY, False, 1, False, "M104 S210\n"),
            (F.KLIPPER, True, 1, True, "M109 S210 T1\n"),
            (F.REPRAP_FIRMWARE, False, 1, True, "G10 P1 S210\n"),
            (F.REPRAP_FIRMWARE, True, None, False, "G10 S210\nM116\n"),
            (F.TEACUP, True, None, False, "M104 S210\nM116\n"),
            (F.MAKERWARE, True, 0, False, ""),
            (F.SAILFISH, False, 0, False, "M104 S210 T0\n"),
            (F.MACH3, False, None, False, "M104 P210\n"),
            (F.MACHINEKIT, True, None, False, "M109 P210\n"),
        ],
    )
    def test_nozzle(
        self,
        flavor: FirmwareFlavor,
        wait: bool,
        tool: int | None,
        multiple: bool,
        expected: str,
    ) -> None:
        assert dispatch(flavor).nozzle_temperature(210, wait, tool, multiple) == expected

    def test_bed(self) -> None:
        d = dispatch(F.MARLIN_LEGACY)
        assert d.bed_temperature(60, wait=False) == "M140 S60\n"
        assert d.bed_temperature(60, wait=True) == "M190 S60\n"

    def test_chamber_wait_circulates_air(self) -> None:
        assert dispatch(F.BBL).chamber_temperature(45, wait=True) == (
            "M106 P2 S255\nM191 S45\nM106 P2 S0\n"
        )

    def test_chamber_no_wait(self) -> None:
        assert dispatch(F.BBL).chamber_temperature(45, wait=False) == "M141 S45\n"


# ---------------------------------------------------------------------------
# Fans
# ---------------------------------------------------------------------------


class TestFans:
    @pytest.mark.parametrize(
        "flavor, speed, expected",
        [
            (F.KLIPPER, 50, "M106 S127.5\n"),
            (F.KLIPPER, 100, "M106 S255\n"),
            (F.KLIPPER, 0, "M106 S0\n"),
            (F.TEACUP, 0, "M106 S0\n"),
            (F.MAKERWARE, 50, "M126\n"),
            (F.SAILFISH, 0, "M127\n"),
            (F.MACHINEKIT, 40, "M106 P102\n"),
            (F.MACH3, 100, "M106 P255\n"),
        ],
    )
    def test_part_fan(self, flavor: FirmwareFlavor, speed: int, expected: str) -> None:
        assert dispatch(flavor).fan(speed) == expected

    def test_additional_fan(self) -> None:
        d = dispatch(F.BBL)
        assert d.additional_fan(50) == "M106 P2 S127\n"
        assert d.additional_fan(0) == "M106 P2 S0\n"

    def test_exhaust_fan(self) -> None:
        d = dispatch(F.BBL)
        assert d.exhaust_fan(100) == "M106 P3 S255\n"
        assert d.exhaust_fan(50, add_eol=False) == "M106 P3 S127"


# ---------------------------------------------------------------------------
# Kinematics
# ---------------------------------------------------------------------------


class TestKinematics:
    @pytest.mark.parametrize(
        "flavor, expected",
        [
            (F.MARLIN_LEGACY, "M204 S1000\n"),
            (F.SMOOTHIE, "M204 S1000\n"),
            (F.MARLIN_FIRMWARE, "M204 P1000\n"),
            (F.REPRAP_FIRMWARE, "M204 P1000\n"),
            (F.REPETIER, "M201 X1000 Y1000\nM202 X1000 Y1000\n"),
            (F.KLIPPER, "M204 S1000\n"),
        ],
    )
    def test_acceleration(self, flavor: FirmwareFlavor, expected: str) -> None:
        assert dispatch(flavor).acceleration(1000) == expected

    def test_klipper_accel_to_decel(self) -> None:
        assert dispatch(F.KLIPPER).acceleration(1000, accel_to_decel=750.0) == (
            "SET_VELOCITY_LIMIT ACCEL_TO_DECEL=750\nM204 S1000\n"
        )

    def test_accel_to_decel_ignored_elsewhere(self) -> None:
        assert dispatch(F.MARLIN_LEGACY).acceleration(1000, accel_to_decel=750.0) == (
            "M204 S1000\n"
        )

    def test_jerk(self) -> None:
        assert dispatch(F.MARLIN_LEGACY).jerk(8.5) == "M205 X8.5 Y8.5\n"
        assert dispatch(F.KLIPPER).jerk(5.0) == (
            "SET_VELOCITY_LIMIT SQUARE_CORNER_VELOCITY=5\n"
        )

    @pytest.mark.parametrize(
        "flavor, expected",
        [
            (F.MARLIN_LEGACY, "M400\nM900 K0.025\n"),
            (F.KLIPPER, "SET_PRESSURE_ADVANCE ADVANCE=0.025\n"),
            (F.REPRAP_FIRMWARE, "M572 D0 S0.025\n"),
        ],
    )
    def test_pressure_advance(self, flavor: FirmwareFlavor, expected: str) -> None:
        assert dispatch(flavor).pressure_advance(0.025) == expected


# ---------------------------------------------------------------------------
# Tools and retraction
# ---------------------------------------------------------------------------


class TestTools:
    @pytest.mark.parametrize(
        "flavor, expected",
        [
            (F.MARLIN_LEGACY, "T1\n"),
            (F.KLIPPER, "T1\n"),
            (F.MAKERWARE, "M135 T1\n"),
            (F.SAILFISH, "M108 T1\n"),
            (F.BBL, "M1020 S1\n"),
        ],
    )
    def test_toolchange(self, flavor: FirmwareFlavor, expected: str) -> None:
        assert dispatch(flavor).toolchange(1) == expected

    def test_firmware_retract(self) -> None:
        assert dispatch(F.MARLIN_LEGACY).firmware_retract() == "G10\n"
        assert dispatch(F.MARLIN_LEGACY).firmware_unretract() == "G11\n"
        assert dispatch(F.MACHINEKIT).firmware_retract() == "G22\n"
        assert dispatch(F.MACHINEKIT).firmware_unretract() == "G23\n"

    def test_extruder_on_off(self) -> None:
        d = dispatch(F.MAKERWARE)
        assert d.extruder_on() == "M101\n"
        assert d.extruder_off() == "M103\n"

    def test_comment_suffix(self) -> None:
        assert dispatch(F.MARLIN_LEGACY, comments=True).toolchange(2) == (
            "T2 ; change extruder\n"
        )
