"""Bidirectional mapping between the persisted canvas and the live graph.

Persisted (on-disk JSON, Obsidian-compatible):

    {"nodes": [{"id", "x", "y", "width", "height", "type": "text"|"file",
                "text"?, "file"?, "color"?}],
     "edges": [{"id", "fromNode", "fromSide", "toNode", "toSide",
                "color"?, "label"?}]}

Internal: CanvasNode(id, type, position, data={label, text, file, width,
height, color}) and CanvasEdge(id, source, target, data={fromSide, toSide,
color, label}).

to_internal() and to_persisted() are pure and never raise. Defaults are
injected only on the way out: a freshly loaded node keeps width=None until the
next save. Any node type other than "file" is treated as "text"; an unknown
future type is downgraded silently.

parse_document() is the validating entry point for raw JSON text and raises
ParseError; dump_document() produces the `save` payload.
"""

from __future__ import annotations

import json
from typing import Any

from canvassync.errors import ParseError
from canvassync.models import NODE_FILE, NODE_TEXT, CanvasEdge, CanvasNode, Graph, Position

DEFAULT_WIDTH = 250
DEFAULT_HEIGHT = 60
DEFAULT_FROM_SIDE = "right"
DEFAULT_TO_SIDE = "left"


# ---------------------------------------------------------------------------
# Persisted -> internal
# ---------------------------------------------------------------------------


def _node_to_internal(raw: dict[str, Any]) -> CanvasNode:
    text = raw.get("text")
    file = raw.get("file")
    return CanvasNode(
        id=raw.get("id", ""),
        type=NODE_FILE if raw.get("type") == NODE_FILE else NODE_TEXT,
        position=Position(raw.get("x", 0), raw.get("y", 0)),
        data={
            "label": text or file or "",
            "text": text or "",
            "file": file,
            "width": raw.get("width"),
            "height": raw.get("height"),
            "color": raw.get("color"),
        },
    )


def _edge_to_internal(raw: dict[str, Any]) -> CanvasEdge:
    return CanvasEdge(
        id=raw.get("id", ""),
        source=raw.get("fromNode", ""),
        target=raw.get("toNode", ""),
        data={
            "fromSide": raw.get("fromSide"),
            "toSide": raw.get("toSide"),
            "color": raw.get("color"),
            "label": raw.get("label"),
        },
    )


def to_internal(persisted: dict[str, Any]) -> Graph:
    """Map a persisted canvas document to live graph nodes and edges."""
    return Graph(
        nodes=[_node_to_internal(n) for n in persisted.get("nodes") or []],
        edges=[_edge_to_internal(e) for e in persisted.get("edges") or []],
    )


# ---------------------------------------------------------------------------
# Internal -> persisted
# ---------------------------------------------------------------------------


def _compact(d: dict[str, Any]) -> dict[str, Any]:
    """Drop absent (None) fields, as JSON.stringify drops undefined."""
    return {k: v for k, v in d.items() if v is not None}


def _node_to_persisted(node: CanvasNode, default_width: float, default_height: float) -> dict[str, Any]:
    data = node.data
    is_file = node.type == NODE_FILE
    width = data.get("width")
    height = data.get("height")
    return _compact({
        "id": node.id,
        "x": node.position.x,
        "y": node.position.y,
        "width": default_width if width is None else width,
        "height": default_height if height is None else height,
        "type": NODE_FILE if is_file else NODE_TEXT,
        "text": None if is_file else (data.get("text") or data.get("label") or ""),
        "file": data.get("file") if is_file else None,
        "color": data.get("color"),
    })


def _edge_to_persisted(edge: CanvasEdge) -> dict[str, Any]:
    data = edge.data
    return _compact({
        "id": edge.id,
        "fromNode": edge.source,
        "fromSide": data.get("fromSide") or DEFAULT_FROM_SIDE,
        "toNode": edge.target,
        "toSide": data.get("toSide") or DEFAULT_TO_SIDE,
        "color": data.get("color"),
        "label": data.get("label"),
    })


def to_persisted(
    nodes: list[CanvasNode],
    edges: list[CanvasEdge],
    *,
    default_width: float = DEFAULT_WIDTH,
    default_height: float = DEFAULT_HEIGHT,
) -> dict[str, Any]:
    """Map live graph nodes and edges to the persisted document shape."""
    return {
        "nodes": [_node_to_persisted(n, default_width, default_height) for n in nodes],
        "edges": [_edge_to_persisted(e) for e in edges],
    }


def normalize(persisted: dict[str, Any], **defaults: float) -> dict[str, Any]:
    """One to_internal/to_persisted pass. The result is a fixed point."""
    return to_persisted(*to_internal(persisted), **defaults)


# ---------------------------------------------------------------------------
# Raw JSON
# ---------------------------------------------------------------------------


def _check_entries(entries: Any, kind: str, required: tuple[str, ...]) -> list[dict[str, Any]]:
    if entries is None:
        return []
    if not isinstance(entries, list):
        msg = f"'{kind}' must be a list, got {type(entries).__name__}"
        raise ParseError(msg)
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            msg = f"{kind}[{i}] is not an object"
            raise ParseError(msg)
        missing = [k for k in required if not isinstance(entry.get(k), str)]
        if missing:
            msg = f"{kind}[{i}] missing {', '.join(missing)}"
            raise ParseError(msg)
    return entries


def parse_document(content: str) -> dict[str, Any]:
    """Parse canvas JSON text. Blank content is an empty canvas."""
    if not content or not content.strip():
        return {"nodes": [], "edges": []}
    try:
        raw = json.loads(content)
    except json.JSONDecodeError as exc:
        msg = f"Invalid canvas JSON: {exc}"
        raise ParseError(msg) from exc
    if not isinstance(raw, dict):
        msg = f"Canvas root must be an object, got {type(raw).__name__}"
        raise ParseError(msg)
    return {
        "nodes": _check_entries(raw.get("nodes"), "nodes", ("id",)),
        "edges": _check_entries(raw.get("edges"), "edges", ("id", "fromNode", "toNode")),
    }


def dump_document(persisted: dict[str, Any], indent: int | None = 2) -> str:
    return json.dumps(persisted, indent=indent, ensure_ascii=False)
