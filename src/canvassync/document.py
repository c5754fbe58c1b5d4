"""Read and write .canvas files on disk.

Writes go to <name>.canvas.tmp under an exclusive flock and are renamed over
the target, so a reader never sees a half-written document.
"""

from __future__ import annotations

import fcntl
from pathlib import Path
from typing import Any

from canvassync.converter import dump_document, parse_document

CANVAS_SUFFIX = ".canvas"


def read_canvas(path: Path | str) -> dict[str, Any]:
    """Load and validate a canvas file. Raises ParseError, OSError."""
    path = Path(path)
    with path.open(encoding="utf-8") as f:
        fcntl.flock(f, fcntl.LOCK_SH)
        return parse_document(f.read())


def write_canvas(path: Path | str, persisted: dict[str, Any], indent: int | None = 2) -> None:
    """Atomically replace path with the serialized document."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        fcntl.flock(f, fcntl.LOCK_EX)
        f.write(dump_document(persisted, indent))
    tmp.replace(path)


def create_canvas(path: Path | str, indent: int | None = 2) -> Path:
    """Write an empty canvas. Raises if the file exists or lacks the .canvas suffix."""
    path = Path(path)
    if path.suffix != CANVAS_SUFFIX:
        msg = f"File must have {CANVAS_SUFFIX} extension: {path.name}"
        raise ValueError(msg)
    if path.exists():
        msg = f"Canvas already exists: {path}"
        raise FileExistsError(msg)
    write_canvas(path, {"nodes": [], "edges": []}, indent)
    return path
