"""Firmware dialects and their instruction templates.

``FlavorDispatch`` answers one question: *given this dialect, what is
the text for operation X with parameters Y?*  It holds no machine
state.  Deduplication, clamping and tool-suffix decisions belong to
:class:`~gcode_writer.gcode.writer.GCodeWriter`; this module only
renders.

Number rendering follows the firmware conventions of each word:

    - temperatures and accelerations are integers
    - fan duty, jerk and ACCEL_TO_DECEL use the shortest ``%g`` form
    - pressure advance uses 4 significant digits
"""

from __future__ import annotations

from enum import Enum


class FirmwareFlavor(str, Enum):
    """Closed set of supported firmware dialects (config value in parens)."""

    REPRAP_SPRINTER = "reprap"
    REPRAP_FIRMWARE = "reprapfirmware"
    REPETIER = "repetier"
    TEACUP = "teacup"
    MAKERWARE = "makerware"
    MARLIN_LEGACY = "marlin"
    MARLIN_FIRMWARE = "marlin2"
    KLIPPER = "klipper"
    SAILFISH = "sailfish"
    MACH3 = "mach3"
    MACHINEKIT = "machinekit"
    SMOOTHIE = "smoothie"
    NO_EXTRUSION = "no-extrusion"
    BBL = "bbl"

    @property
    def is_marlin_family(self) -> bool:
        """Dialects whose machine limits (acceleration/jerk caps) apply."""
        return self in _MARLIN_FAMILY

    @property
    def is_makerbot(self) -> bool:
        return self in _MAKERBOT


_MARLIN_FAMILY = frozenset({
    FirmwareFlavor.MARLIN_LEGACY,
    FirmwareFlavor.MARLIN_FIRMWARE,
    FirmwareFlavor.KLIPPER,
    FirmwareFlavor.BBL,
})

_MAKERBOT = frozenset({FirmwareFlavor.MAKERWARE, FirmwareFlavor.SAILFISH})

_MACH = frozenset({FirmwareFlavor.MACH3, FirmwareFlavor.MACHINEKIT})

# Dialects that understand M82/M83 and get an E reset in the preamble.
_EXTRUSION_MODE = frozenset({
    FirmwareFlavor.REPRAP_SPRINTER,
    FirmwareFlavor.REPRAP_FIRMWARE,
    FirmwareFlavor.MARLIN_LEGACY,
    FirmwareFlavor.MARLIN_FIRMWARE,
    FirmwareFlavor.TEACUP,
    FirmwareFlavor.REPETIER,
    FirmwareFlavor.SMOOTHIE,
    FirmwareFlavor.KLIPPER,
    FirmwareFlavor.BBL,
})

# Dialects with no G92 E0.
_NO_RESET_E = frozenset({
    FirmwareFlavor.MACH3,
    FirmwareFlavor.MAKERWARE,
    FirmwareFlavor.SAILFISH,
})

_TOOLCHANGE_PREFIX = {
    FirmwareFlavor.MAKERWARE: "M135 T",
    FirmwareFlavor.SAILFISH: "M108 T",
    FirmwareFlavor.BBL: "M1020 S",
}

_FAN_OFF = {
    FirmwareFlavor.MAKERWARE: "M127",
    FirmwareFlavor.SAILFISH: "M127",
}

_FAN_ON = {
    FirmwareFlavor.MAKERWARE: "M126",
    FirmwareFlavor.SAILFISH: "M126",
    FirmwareFlavor.MACH3: "M106 P{duty}",
    FirmwareFlavor.MACHINEKIT: "M106 P{duty}",
}

_FIRMWARE_RETRACT = {FirmwareFlavor.MACHINEKIT: "G22"}
_FIRMWARE_UNRETRACT = {FirmwareFlavor.MACHINEKIT: "G23"}


def _g(value: float) -> str:
    return f"{value:g}"


class FlavorDispatch:
    """Render abstract machine requests in one firmware dialect.

    Parameters
    ----------
    flavor : FirmwareFlavor
        Target dialect, fixed for the lifetime of the export.
    comments : bool
        Append ``; <comment>`` suffixes to emitted lines.
    """

    def __init__(self, flavor: FirmwareFlavor, comments: bool = False) -> None:
        self.flavor = FirmwareFlavor(flavor)
        self.comments = comments

    def line(self, code: str, comment: str = "") -> str:
        """One newline-terminated instruction with an optional comment."""
        if self.comments and comment:
            return f"{code} ; {comment}\n"
        return f"{code}\n"

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    @property
    def has_extrusion_mode(self) -> bool:
        return self.flavor in _EXTRUSION_MODE

    @property
    def supports_reset_e(self) -> bool:
        return self.flavor not in _NO_RESET_E

    @property
    def supports_progress(self) -> bool:
        return self.flavor.is_makerbot

    # ------------------------------------------------------------------
    # Program framing
    # ------------------------------------------------------------------

    def units_and_positioning(self) -> str:
        if self.flavor is FirmwareFlavor.MAKERWARE:
            return ""
        return self.line("G90", "absolute coordinates") + self.line(
            "G21", "units in millimeters"
        )

    def extrusion_mode(self, relative: bool) -> str:
        if relative:
            return self.line("M83", "use relative distances for extrusion")
        return self.line("M82", "use absolute distances for extrusion")

    def reset_e(self) -> str:
        return self.line("G92 E0", "reset extrusion distance")

    def progress(self, percent: int) -> str:
        return self.line(f"M73 P{percent}", "update progress")

    def program_end(self) -> str:
        if self.flavor is FirmwareFlavor.MACHINEKIT:
            return self.line("M2", "end of program")
        return ""

    # ------------------------------------------------------------------
    # Temperatures
    # ------------------------------------------------------------------

    def nozzle_temperature(
        self,
        temperature: int,
        wait: bool,
        tool: int | None,
        multiple_tools: bool,
    ) -> str:
        """Set the nozzle temperature, optionally waiting.

        ``tool`` is rendered only when ``multiple_tools`` is set, except
        on MakerWare/Sailfish which always name the tool.
        """
        f = self.flavor
        if wait and f.is_makerbot:
            return ""

        native_wait = f in (FirmwareFlavor.TEACUP, FirmwareFlavor.REPRAP_FIRMWARE)
        if wait and not native_wait:
            code = "M109"
            comment = "set nozzle temperature and wait for it to be reached"
        else:
            # M104 is deprecated on RepRapFirmware
            code = "G10" if f is FirmwareFlavor.REPRAP_FIRMWARE else "M104"
            comment = "set nozzle temperature"

        value_word = "P" if f in _MACH else "S"
        words = f"{value_word}{int(temperature)}"
        if tool is not None and (multiple_tools or f.is_makerbot):
            if f is FirmwareFlavor.REPRAP_FIRMWARE:
                words = f"P{tool} {words}"
            else:
                words = f"{words} T{tool}"

        gcode = self.line(f"{code} {words}", comment)
        if wait and native_wait:
            gcode += self.line("M116", "wait for temperature to be reached")
        return gcode

    def bed_temperature(self, temperature: int, wait: bool) -> str:
        if wait:
            return self.line(
                f"M190 S{int(temperature)}",
                "set bed temperature and wait for it to be reached",
            )
        return self.line(f"M140 S{int(temperature)}", "set bed temperature")

    def chamber_temperature(self, temperature: int, wait: bool) -> str:
        if not wait:
            return self.line(f"M141 S{int(temperature)}", "set chamber temperature")
        return (
            self.line("M106 P2 S255", "circulate chamber air")
            + self.line(
                f"M191 S{int(temperature)}",
                "set chamber temperature and wait for it to be reached",
            )
            + self.line("M106 P2 S0", "stop chamber air circulation")
        )

    # ------------------------------------------------------------------
    # Fans
    # ------------------------------------------------------------------

    def fan(self, speed: int) -> str:
        """Part-cooling fan at ``speed`` percent (0 turns it off)."""
        if speed == 0:
            return self.line(_FAN_OFF.get(self.flavor, "M106 S0"), "disable fan")
        duty = _g(255.0 * speed / 100.0)
        template = _FAN_ON.get(self.flavor, "M106 S{duty}")
        return self.line(template.format(duty=duty), "enable fan")

    def additional_fan(self, speed: int) -> str:
        comment = "disable additional fan" if speed == 0 else "enable additional fan"
        return self.line(f"M106 P2 S{int(255.0 * speed / 100.0)}", comment)

    def exhaust_fan(self, speed: int, add_eol: bool = True) -> str:
        code = f"M106 P3 S{int(speed / 100.0 * 255)}"
        return f"{code}\n" if add_eol else code

    # ------------------------------------------------------------------
    # Kinematics
    # ------------------------------------------------------------------

    def acceleration(
        self, acceleration: int, accel_to_decel: float | None = None,
    ) -> str:
        """Set the default acceleration.

        ``accel_to_decel`` is honoured on Klipper only; it adds a
        ``SET_VELOCITY_LIMIT`` line ahead of ``M204``.
        """
        match self.flavor:
            case FirmwareFlavor.REPETIER:
                # M201 = max printing accel, M202 = max travel accel
                return self.line(
                    f"M201 X{acceleration} Y{acceleration}", "adjust acceleration"
                ) + self.line(
                    f"M202 X{acceleration} Y{acceleration}", "adjust acceleration"
                )
            case FirmwareFlavor.REPRAP_FIRMWARE | FirmwareFlavor.MARLIN_FIRMWARE:
                # Marlin 2 splits print/retract/travel; P leaves travel alone.
                return self.line(f"M204 P{acceleration}", "adjust acceleration")
            case FirmwareFlavor.KLIPPER if accel_to_decel is not None:
                return self.line(
                    f"SET_VELOCITY_LIMIT ACCEL_TO_DECEL={_g(accel_to_decel)}",
                    "adjust ACCEL_TO_DECEL",
                ) + self.line(f"M204 S{acceleration}", "adjust acceleration")
            case _:
                return self.line(f"M204 S{acceleration}", "adjust acceleration")

    def jerk(self, jerk: float) -> str:
        if self.flavor is FirmwareFlavor.KLIPPER:
            return self.line(
                f"SET_VELOCITY_LIMIT SQUARE_CORNER_VELOCITY={_g(jerk)}", "adjust jerk"
            )
        return self.line(f"M205 X{_g(jerk)} Y{_g(jerk)}", "adjust jerk")

    def pressure_advance(self, value: float) -> str:
        comment = "override pressure advance value"
        pa = f"{value:.4g}"
        match self.flavor:
            case FirmwareFlavor.KLIPPER:
                return self.line(f"SET_PRESSURE_ADVANCE ADVANCE={pa}", comment)
            case FirmwareFlavor.REPRAP_FIRMWARE:
                return self.line(f"M572 D0 S{pa}", comment)
            case _:
                return self.line("M400") + self.line(f"M900 K{pa}", comment)

    # ------------------------------------------------------------------
    # Tools and extrusion
    # ------------------------------------------------------------------

    def toolchange(self, tool: int) -> str:
        prefix = _TOOLCHANGE_PREFIX.get(self.flavor, "T")
        return self.line(f"{prefix}{tool}", "change extruder")

    def firmware_retract(self) -> str:
        return self.line(_FIRMWARE_RETRACT.get(self.flavor, "G10"), "retract")

    def firmware_unretract(self) -> str:
        return self.line(_FIRMWARE_UNRETRACT.get(self.flavor, "G11"), "unretract")

    def extruder_on(self) -> str:
        return self.line("M101", "extruder on")

    def extruder_off(self) -> str:
        return self.line("M103", "extruder off")
