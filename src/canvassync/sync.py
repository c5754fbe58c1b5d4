"""SyncEngine: debounced persistence of the live graph to the host.

Session states:

    IDLE --mutation--> DIRTY --debounce expires--> PERSISTING --> IDLE
                       DIRTY --mutation--> DIRTY (debounce restarted)
    loadContent --> LOADING --guard expires--> IDLE

While LOADING, store notifications are ignored entirely, so replacing the
document on load (and anything that replacement triggers synchronously) is
never echoed back to the host as a save.

A notification counts as a mutation only when it changes the persisted form
of the document; data-bag updates the format does not carry (fetched file
content, lastModified) never start a save. Once dirty, the debounce always
sends: N mutations in one window produce exactly one save, even when they
cancel out. Saves are fire-and-forget.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

from canvassync import protocol
from canvassync.converter import DEFAULT_HEIGHT, DEFAULT_WIDTH, dump_document, parse_document, to_internal, to_persisted

if TYPE_CHECKING:
    from collections.abc import Callable

    from canvassync.channel import HostChannel
    from canvassync.models import Graph
    from canvassync.store import DocumentStore
    from canvassync.timers import Scheduler, TimerHandle

logger = logging.getLogger("canvassync.sync")

DEBOUNCE_SECONDS = 0.5
LOAD_GUARD_SECONDS = 0.1


class SyncState(enum.Enum):
    IDLE = "idle"
    DIRTY = "dirty"
    PERSISTING = "persisting"
    LOADING = "loading"


class SyncEngine:
    """Observes a DocumentStore and schedules `save` messages."""

    def __init__(
        self,
        store: DocumentStore,
        channel: HostChannel,
        scheduler: Scheduler,
        *,
        debounce: float = DEBOUNCE_SECONDS,
        load_guard: float = LOAD_GUARD_SECONDS,
        indent: int | None = 2,
        default_width: float = DEFAULT_WIDTH,
        default_height: float = DEFAULT_HEIGHT,
    ) -> None:
        self._store = store
        self._channel = channel
        self._scheduler = scheduler
        self.debounce = debounce
        self.load_guard = load_guard
        self.indent = indent
        self._defaults = {"default_width": default_width, "default_height": default_height}

        self.state = SyncState.IDLE
        self._debounce_timer: TimerHandle | None = None
        self._guard_timer: TimerHandle | None = None
        self._held = False
        self._deferred = False
        # persisted form as of the last load, save or mutation
        self._persisted_form: str | None = None
        self._unsubscribe: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self._on_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._cancel_debounce()
        if self._guard_timer is not None:
            self._guard_timer.cancel()
            self._guard_timer = None
        self.state = SyncState.IDLE

    # ------------------------------------------------------------------
    # Store changes -> save
    # ------------------------------------------------------------------

    def _on_change(self, graph: Graph) -> None:
        if self.state is SyncState.LOADING:
            return
        form = self._render(graph)
        if form == self._persisted_form:
            logger.debug("change does not touch the persisted document, no save")
            return
        self._persisted_form = form
        self.state = SyncState.DIRTY
        self._cancel_debounce()
        self._debounce_timer = self._scheduler.call_later(self.debounce, self._on_debounce)

    def _cancel_debounce(self) -> None:
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
            self._debounce_timer = None

    def _on_debounce(self) -> None:
        self._debounce_timer = None
        if self._held:
            self._deferred = True
            return
        self.persist()

    def _render(self, graph: Graph) -> str:
        return dump_document(to_persisted(graph.nodes, graph.edges, **self._defaults), self.indent)

    def serialize(self) -> str:
        """Current document as the JSON text a `save` message carries."""
        return self._render(self._store.snapshot())

    def persist(self) -> None:
        """Serialize and send now."""
        self.state = SyncState.PERSISTING
        try:
            content = self.serialize()
            self._channel.send(protocol.save(content))
            self._persisted_form = content
            logger.info("save sent (%d bytes)", len(content))
        finally:
            self.state = SyncState.IDLE

    def flush(self) -> bool:
        """Persist pending changes immediately instead of waiting for the debounce."""
        if self.state is not SyncState.DIRTY:
            return False
        self._cancel_debounce()
        self._deferred = False
        self.persist()
        return True

    def hold(self) -> None:
        """Defer saves while a gesture is in progress."""
        self._held = True

    def release(self) -> None:
        self._held = False
        if self._deferred:
            self._deferred = False
            self.persist()

    # ------------------------------------------------------------------
    # loadContent
    # ------------------------------------------------------------------

    def load_content(self, content: str) -> Graph:
        """Replace the document from host JSON text.

        Raises ParseError before touching any state, so a bad payload leaves
        the current document in place.
        """
        persisted = parse_document(content)
        if self._debounce_timer is not None:
            logger.warning("loadContent supersedes unsaved changes")
            self._cancel_debounce()
        self._deferred = False
        if self._guard_timer is not None:
            self._guard_timer.cancel()

        self.state = SyncState.LOADING
        graph = to_internal(persisted)
        self._store.replace(graph.nodes, graph.edges)
        self._persisted_form = self._render(graph)
        logger.info("loaded canvas: %d nodes, %d edges", len(graph.nodes), len(graph.edges))

        dangling = self._store.dangling_edges()
        if dangling:
            logger.warning("edges reference missing nodes: %s", ", ".join(e.id for e in dangling))

        self._guard_timer = self._scheduler.call_later(self.load_guard, self._end_loading)
        return graph

    def _end_loading(self) -> None:
        self._guard_timer = None
        self.state = SyncState.IDLE
