"""In-memory graph types used while a canvas is being edited."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any, NamedTuple

NODE_TEXT = "text"
NODE_FILE = "file"

SIDES = ("top", "right", "bottom", "left")


def _new_id(prefix: str) -> str:
    """Sortable unique ID: nanosecond timestamp + random suffix."""
    return f"{prefix}-{time.time_ns():020d}-{secrets.token_hex(3)}"


def new_node_id() -> str:
    return _new_id("node")


def new_edge_id() -> str:
    return _new_id("edge")


@dataclass(frozen=True)
class Position:
    x: float = 0
    y: float = 0


@dataclass
class CanvasNode:
    """A node of the live graph.

    ``data`` is the single mutable surface: label, text, file, width, height,
    color, plus anything file loading attaches (content, lastModified).
    ``label`` mirrors ``text`` for text nodes and ``file`` for file nodes.
    """

    id: str
    type: str = NODE_TEXT
    position: Position = field(default_factory=Position)
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_file(self) -> bool:
        return self.type == NODE_FILE

    @property
    def label(self) -> str:
        return self.data.get("label") or ""

    @property
    def file(self) -> str | None:
        return self.data.get("file")


@dataclass
class CanvasEdge:
    """A connection between two nodes; sides/color/label live in ``data``."""

    id: str
    source: str
    target: str
    data: dict[str, Any] = field(default_factory=dict)

    def touches(self, node_ids: set[str] | frozenset[str]) -> bool:
        return self.source in node_ids or self.target in node_ids


class Graph(NamedTuple):
    """A snapshot of the live graph: nodes and edges in insertion order."""

    nodes: list[CanvasNode]
    edges: list[CanvasEdge]
