"""DocumentStore: the live graph and its change notifications.

The store is the only owner of nodes and edges. Every mutation replaces the
affected node/edge objects (never edits them in place), so snapshots handed to
subscribers stay valid after later mutations.

    store = DocumentStore()
    unsubscribe = store.subscribe(lambda graph: ...)
    node = store.create_node(Position(10, 20))
    store.update_node_data(node.id, {"text": "hi", "label": "hi"})
    store.delete_nodes([node.id])     # also drops every edge touching it

Store operations never raise: unknown ids are ignored, because updates racing
with deletions are expected.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from canvassync.converter import DEFAULT_HEIGHT, DEFAULT_WIDTH
from canvassync.errors import ReferentialInconsistency
from canvassync.models import NODE_FILE, NODE_TEXT, CanvasEdge, CanvasNode, Graph, Position, new_edge_id, new_node_id

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger("canvassync.store")

NEW_NODE_TEXT = "New note"
FILE_NODE_WIDTH = 400
FILE_NODE_HEIGHT = 400


class DocumentStore:
    """Holds the nodes and edges of one open canvas."""

    def __init__(
        self,
        *,
        new_node_text: str = NEW_NODE_TEXT,
        node_size: tuple[float, float] = (DEFAULT_WIDTH, DEFAULT_HEIGHT),
        file_node_size: tuple[float, float] = (FILE_NODE_WIDTH, FILE_NODE_HEIGHT),
    ) -> None:
        self._nodes: list[CanvasNode] = []
        self._edges: list[CanvasEdge] = []
        self._subscribers: list[Callable[[Graph], None]] = []
        self._new_node_text = new_node_text
        self._node_size = node_size
        self._file_node_size = file_node_size

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> list[CanvasNode]:
        return list(self._nodes)

    @property
    def edges(self) -> list[CanvasEdge]:
        return list(self._edges)

    def snapshot(self) -> Graph:
        return Graph(list(self._nodes), list(self._edges))

    def get_node(self, node_id: str) -> CanvasNode | None:
        for node in self._nodes:
            if node.id == node_id:
                return node
        return None

    def dangling_edges(self) -> list[CanvasEdge]:
        """Edges whose source or target is not a node of this document."""
        ids = {n.id for n in self._nodes}
        return [e for e in self._edges if e.source not in ids or e.target not in ids]

    def ensure_consistent(self) -> None:
        dangling = self.dangling_edges()
        if dangling:
            raise ReferentialInconsistency([e.id for e in dangling])

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[Graph], None]) -> Callable[[], None]:
        """Register callback for every mutation. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        graph = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(graph)
            except Exception:
                logger.exception("store subscriber failed")

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def _fresh_id(self, generate: Callable[[], str], taken: Iterable[str]) -> str:
        used = set(taken)
        new_id = generate()
        while new_id in used:
            new_id = generate()
        return new_id

    def replace(self, nodes: list[CanvasNode], edges: list[CanvasEdge]) -> None:
        """Swap the whole document (used by loads). One notification."""
        self._nodes = list(nodes)
        self._edges = list(edges)
        self._notify()

    def create_node(self, position: Position, *, text: str | None = None) -> CanvasNode:
        text = self._new_node_text if text is None else text
        width, height = self._node_size
        node = CanvasNode(
            id=self._fresh_id(new_node_id, (n.id for n in self._nodes)),
            type=NODE_TEXT,
            position=position,
            data={"label": text, "text": text, "width": width, "height": height},
        )
        self._nodes.append(node)
        logger.debug("created node %s", node.id)
        self._notify()
        return node

    def create_file_node(self, path: str, position: Position) -> CanvasNode:
        width, height = self._file_node_size
        node = CanvasNode(
            id=self._fresh_id(new_node_id, (n.id for n in self._nodes)),
            type=NODE_FILE,
            position=position,
            data={"label": path, "text": "", "file": path, "width": width, "height": height},
        )
        self._nodes.append(node)
        logger.debug("created file node %s -> %s", node.id, path)
        self._notify()
        return node

    def delete_nodes(self, node_ids: Iterable[str]) -> None:
        """Remove nodes and every edge touching them in a single step."""
        ids = frozenset(node_ids)
        self._nodes = [n for n in self._nodes if n.id not in ids]
        self._edges = [e for e in self._edges if not e.touches(ids)]
        logger.debug("deleted nodes %s", sorted(ids))
        self._notify()

    def _replace_node(self, node_id: str, **changes: Any) -> bool:
        for i, node in enumerate(self._nodes):
            if node.id == node_id:
                self._nodes = [*self._nodes[:i], dataclasses.replace(node, **changes), *self._nodes[i + 1:]]
                return True
        return False

    def update_node_data(self, node_id: str, partial: dict[str, Any]) -> None:
        """Merge partial into the node's data bag. Unknown ids are ignored.

        label follows text (text nodes) or file (file nodes) unless the
        caller sets it explicitly.
        """
        node = self.get_node(node_id)
        if node is None:
            logger.debug("update for missing node %s ignored", node_id)
            return
        data = {**node.data, **partial}
        if "label" not in partial:
            mirrored = "file" if node.is_file else "text"
            if mirrored in partial:
                data["label"] = partial[mirrored] or ""
        self._replace_node(node_id, data=data)
        self._notify()

    def move_node(self, node_id: str, x: float, y: float) -> None:
        if self._replace_node(node_id, position=Position(x, y)):
            self._notify()

    def add_edge(
        self,
        source: str,
        target: str,
        *,
        from_side: str | None = None,
        to_side: str | None = None,
        color: str | None = None,
        label: str | None = None,
    ) -> CanvasEdge:
        """Append an edge. Endpoints are not validated here."""
        edge = CanvasEdge(
            id=self._fresh_id(new_edge_id, (e.id for e in self._edges)),
            source=source,
            target=target,
            data={"fromSide": from_side, "toSide": to_side, "color": color, "label": label},
        )
        self._edges.append(edge)
        self._notify()
        return edge

    def delete_edges(self, edge_ids: Iterable[str]) -> None:
        ids = frozenset(edge_ids)
        self._edges = [e for e in self._edges if e.id not in ids]
        self._notify()
