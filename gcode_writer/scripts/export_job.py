#!/usr/bin/env python3
"""
Export Job Script.

Turn a YAML job file into G-code for the configured firmware flavor.

Usage:
    python -m gcode_writer.scripts.export_job --job job.yaml --output out.gcode
    python -m gcode_writer.scripts.export_job --job job.yaml --config klipper.yaml
    python -m gcode_writer.scripts.export_job --job plates.yaml --output out.gcode
    python -m gcode_writer.scripts.export_job --job job.yaml --dry-run

A job with several plates writes one program per plate
(``out_plate1.gcode``, ``out_plate2.gcode`` ...).  Without ``--output``
the program is printed to stdout.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from gcode_writer.configs.loader import ConfigError, load_config
from gcode_writer.gcode.formatter import GCodeError
from gcode_writer.gcode.generator import GCodeGenerator
from gcode_writer.gcode.vm import GCodeVM
from gcode_writer.job_ir.operations import load_job
from gcode_writer.utils import fs
from gcode_writer.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def plate_output_path(output: Path, index: int, count: int) -> Path:
    """``out.gcode`` for a single plate, ``out_plate<N>.gcode`` otherwise."""
    if count == 1:
        return output
    return output.with_name(f"{output.stem}_plate{index + 1}{output.suffix}")


def summarize(gcode: str) -> str:
    vm = GCodeVM()
    vm.load_string(gcode)
    result = vm.run()
    x, y, z = result["final_pos"]
    return (
        f"{len(vm.gcode_lines)} lines, {result['move_count']} moves "
        f"({result['extrude_moves']} extruding, {result['arc_moves']} arcs), "
        f"filament {result['filament_used_mm']:.2f} mm, "
        f"est. {result['time_estimate_s']:.1f} s, "
        f"end at X{x:.3f} Y{y:.3f} Z{z:.3f}"
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Export a job file to G-code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--job",
        "-j",
        type=str,
        required=True,
        help="Job file (YAML)",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Printer configuration file path (default: shipped printer.yaml)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output G-code path (default: stdout)",
    )
    parser.add_argument(
        "--comments",
        action="store_true",
        help="Annotate emitted lines with comments",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Generate and re-parse the G-code but write nothing",
    )

    args = parser.parse_args(argv)
    setup_logging(args.log_level, context={"job": Path(args.job).stem})

    try:
        config = load_config(args.config)
        if args.comments:
            config = config.model_copy(update={"gcode_comments": True})
        job = load_job(args.job)
    except (FileNotFoundError, ConfigError, GCodeError) as e:
        logger.error("%s", e)
        return 1

    gen = GCodeGenerator(config)
    try:
        programs = gen.generate_plates(job.plates, job.filaments or None)
    except GCodeError as e:
        logger.error("Generation failed: %s", e)
        return 1

    if args.dry_run:
        for index, gcode in enumerate(programs):
            print(f"Plate {index + 1}: {summarize(gcode)}")
        return 0

    if args.output is None:
        sys.stdout.write("".join(programs))
        return 0

    output = Path(args.output)
    for index, gcode in enumerate(programs):
        path = plate_output_path(output, index, len(programs))
        try:
            fs.atomic_write_text(path, gcode)
        except RuntimeError as e:
            logger.error("%s", e)
            return 1
        logger.info("G-code written to %s", path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
