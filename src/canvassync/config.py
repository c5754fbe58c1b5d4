"""CanvasConfig: project-local settings for canvas sessions.

Looked up as canvassync.toml in the project root (searched upward from cwd).
Every key is optional:

    [canvas]
    default_width = 250        # written by save when a node has no width
    default_height = 60
    file_node_width = 400      # size of newly created file-backed nodes
    file_node_height = 400
    new_node_text = "New note"

    [sync]
    debounce_ms = 500          # coalescing window for document saves
    load_guard_ms = 100        # saves suppressed this long after loadContent
    indent = 2                 # JSON indent of the save payload

    [files]
    request_timeout_s = 10     # loadFile / saveFile deadline
    autoload = true            # reload file-backed nodes after loadContent

    [host]
    max_line_mb = 64           # longest inbound JSON line (one whole document)

    [log]
    level = "INFO"
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_CONFIG_FILENAME = "canvassync.toml"


@dataclass
class CanvasSection:
    default_width: float = 250
    default_height: float = 60
    file_node_width: float = 400
    file_node_height: float = 400
    new_node_text: str = "New note"


@dataclass
class SyncSection:
    debounce_ms: int = 500
    load_guard_ms: int = 100
    indent: int = 2

    @property
    def debounce(self) -> float:
        return self.debounce_ms / 1000

    @property
    def load_guard(self) -> float:
        return self.load_guard_ms / 1000


@dataclass
class FilesSection:
    request_timeout_s: float = 10.0
    autoload: bool = True


@dataclass
class HostSection:
    max_line_mb: int = 64

    @property
    def max_line_bytes(self) -> int:
        return self.max_line_mb * 1024 * 1024


@dataclass
class LogSection:
    level: str = "INFO"


@dataclass
class CanvasConfig:
    """Resolved configuration for one project."""

    root: Path                      # directory that contains canvassync.toml
    canvas: CanvasSection = field(default_factory=CanvasSection)
    sync: SyncSection = field(default_factory=SyncSection)
    files: FilesSection = field(default_factory=FilesSection)
    host: HostSection = field(default_factory=HostSection)
    log: LogSection = field(default_factory=LogSection)

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME


def load_config(root: Path | str | None = None) -> CanvasConfig:
    """Load canvassync.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    canvas_section = raw.get("canvas", {})
    sync_section = raw.get("sync", {})
    files_section = raw.get("files", {})
    host_section = raw.get("host", {})
    log_section = raw.get("log", {})

    return CanvasConfig(
        root=root_path,
        canvas=CanvasSection(
            default_width=_size(canvas_section.get("default_width", 250)),
            default_height=_size(canvas_section.get("default_height", 60)),
            file_node_width=_size(canvas_section.get("file_node_width", 400)),
            file_node_height=_size(canvas_section.get("file_node_height", 400)),
            new_node_text=str(canvas_section.get("new_node_text", "New note")),
        ),
        sync=SyncSection(
            debounce_ms=int(sync_section.get("debounce_ms", 500)),
            load_guard_ms=int(sync_section.get("load_guard_ms", 100)),
            indent=int(sync_section.get("indent", 2)),
        ),
        files=FilesSection(
            request_timeout_s=float(files_section.get("request_timeout_s", 10.0)),
            autoload=bool(files_section.get("autoload", True)),
        ),
        host=HostSection(
            max_line_mb=int(host_section.get("max_line_mb", 64)),
        ),
        log=LogSection(
            level=str(log_section.get("level", "INFO")).upper(),
        ),
    )


def _size(value: Any) -> float:
    """Keep whole numbers as int so saved documents read 250, not 250.0."""
    number = float(value)
    return int(number) if number.is_integer() else number


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for canvassync.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path) -> Path:
    """Write a default canvassync.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"canvassync.toml already exists at {config_path}"
        raise FileExistsError(msg)

    content = """\
[canvas]
# default_width = 250       # width written for nodes that have none
# default_height = 60
# file_node_width = 400
# file_node_height = 400
# new_node_text = "New note"

[sync]
# debounce_ms = 500         # coalescing window for document saves
# load_guard_ms = 100       # saves suppressed this long after a load
# indent = 2

[files]
# request_timeout_s = 10
# autoload = true           # reload file-backed nodes after each load

[host]
# max_line_mb = 64          # longest inbound JSON line

[log]
# level = "INFO"
"""
    config_path.write_text(content)
    return config_path
