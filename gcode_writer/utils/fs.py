"""Atomic G-code output and YAML input.

A printer host polling the output directory must never pick up a
truncated program, so exported files go through a sibling temporary
file: write -> fsync -> rename over the target.

Usage:
    from gcode_writer.utils import fs
    fs.atomic_write_text(out_dir / "benchy_plate1.gcode", gcode)
    data = fs.load_yaml("printer.yaml")
"""

import os
from pathlib import Path
from typing import Any, Union

import yaml

PathLike = Union[str, Path]


def ensure_dir(p: PathLike) -> Path:
    """Create directory ``p`` (and parents) if missing; return it as a Path."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_text(
    path: PathLike,
    text: str,
    encoding: str = "utf-8",
    tmp_suffix: str = ".part",
) -> None:
    """Write a text file atomically.

    Parameters
    ----------
    path : PathLike
        Target file; parent directories are created.
    text : str
        Full file content (a complete G-code program).
    encoding : str
        Text encoding.  G-code produced by the writer is plain ASCII;
        UTF-8 keeps free-form ``Comment`` text intact.
    tmp_suffix : str
        Suffix of the temporary sibling file.

    Raises
    ------
    RuntimeError
        If the write or rename fails.  The temporary file is removed and
        an existing target is left untouched.
    """
    path = Path(path)
    data = text.encode(encoding)
    ensure_dir(path.parent)
    tmp_path = path.with_name(path.name + tmp_suffix)

    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        # rename over the target is atomic on POSIX
        tmp_path.replace(path)
    except OSError as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise RuntimeError(f"Failed to write {path} atomically: {e}") from e


def load_yaml(path: PathLike) -> Any:
    """Parse a YAML document with ``yaml.safe_load``.

    Returns
    -------
    Any
        The document root; ``None`` for an empty file.  Callers check
        the root type themselves.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    yaml.YAMLError
        If the document is not valid YAML.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e
