"""FileNodeManager: load/save requests for file-backed nodes.

Each loadFile/saveFile call gets its own requestId and one entry in the
pending table:

    requestId -> (nodeId, kind, future, timeout timer)

Inbound fileContentLoaded / fileContentError / fileContentSaved messages are
routed through handle_response(). An entry is removed on its first matching
response or when its timer fires, whichever comes first; late responses find
no entry and are dropped. Responses without a requestId resolve the oldest
pending request of a compatible kind for that nodeId.

Per node, a small state machine drives the display:

    VIEWING --refresh--> LOADING --ok--> VIEWING
                                 --fail--> ERROR (reason kept)
    VIEWING/ERROR/LOADING --begin_edit--> EDITING --end_edit--> VIEWING

State is tied to the path it was established for. When a node leaves the
document, or its file path changes (relink, or a loadContent that points the
same id elsewhere), its state is dropped: editing ends and an in-flight load
for the old path is discarded on arrival.

In EDITING every content update is saved straight to the file; reloads are
frozen so an external load cannot clobber the edit. File content travels on
its own channel, independent of the document save debounce.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from canvassync import protocol
from canvassync.errors import FileAccessError, FileNotFound, FileRequestError, NodeStateError, RequestTimeout

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from canvassync.channel import HostChannel
    from canvassync.models import Graph
    from canvassync.store import DocumentStore
    from canvassync.timers import Scheduler, TimerHandle

logger = logging.getLogger("canvassync.files")

REQUEST_TIMEOUT_SECONDS = 10.0

_LOAD = "load"
_SAVE = "save"

# Which pending request kinds each response type may resolve
_ACCEPTS: dict[str, frozenset[str]] = {
    protocol.FILE_CONTENT_LOADED: frozenset({_LOAD}),
    protocol.FILE_CONTENT_SAVED: frozenset({_SAVE}),
    protocol.FILE_CONTENT_ERROR: frozenset({_LOAD, _SAVE}),
}


def new_request_id() -> str:
    return "req-" + uuid.uuid4().hex[:12]


class NodeMode(enum.Enum):
    VIEWING = "viewing"
    LOADING = "loading"
    EDITING = "editing"
    ERROR = "error"


@dataclass
class FileNodeState:
    node_id: str
    mode: NodeMode = NodeMode.VIEWING
    error: str | None = None
    loaded: bool = False
    last_modified: Any = None
    path: str | None = None


@dataclass
class _Pending:
    request_id: str
    node_id: str
    kind: str
    future: asyncio.Future[dict[str, Any]]
    timer: TimerHandle | None = field(default=None, repr=False)


def _file_error(node_id: str, message: dict[str, Any]) -> FileRequestError:
    reason = str(message.get("error", "unknown error"))
    if message.get("code") == "FileNotFound" or "not found" in reason.lower():
        return FileNotFound(node_id, reason)
    return FileAccessError(node_id, reason)


class FileNodeManager:
    """Correlated file requests plus per-node view state."""

    def __init__(
        self,
        store: DocumentStore,
        channel: HostChannel,
        scheduler: Scheduler,
        *,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self._store = store
        self._channel = channel
        self._scheduler = scheduler
        self.timeout = timeout
        self._pending: dict[str, _Pending] = {}
        self._states: dict[str, FileNodeState] = {}
        self._unsubscribe: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self) -> None:
        """Forget view state of nodes that leave the document or change path."""
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self._prune)

    def _prune(self, graph: Graph) -> None:
        paths = {n.id: n.file if n.is_file else None for n in graph.nodes}
        for node_id, state in list(self._states.items()):
            if node_id not in paths:
                del self._states[node_id]
            elif state.path is not None and paths[node_id] != state.path:
                if state.mode is NodeMode.EDITING:
                    logger.info("editing of %s ended: path changed to %s", node_id, paths[node_id])
                del self._states[node_id]

    def close(self) -> None:
        """Detach from the store and cancel every outstanding request."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for entry in list(self._pending.values()):
            if entry.timer is not None:
                entry.timer.cancel()
            if not entry.future.done():
                entry.future.cancel()
        self._pending.clear()

    # ------------------------------------------------------------------
    # Correlated requests
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_for(self, node_id: str) -> int:
        return sum(1 for e in self._pending.values() if e.node_id == node_id)

    async def _request(
        self,
        kind: str,
        node_id: str,
        build: Callable[[str], dict[str, Any]],
    ) -> dict[str, Any]:
        request_id = new_request_id()
        entry = _Pending(request_id, node_id, kind, asyncio.get_running_loop().create_future())
        self._pending[request_id] = entry
        entry.timer = self._scheduler.call_later(self.timeout, lambda: self._expire(request_id))
        try:
            self._channel.send(build(request_id))
            return await entry.future
        finally:
            self._discard(request_id)

    def _discard(self, request_id: str) -> _Pending | None:
        entry = self._pending.pop(request_id, None)
        if entry is not None and entry.timer is not None:
            entry.timer.cancel()
        return entry

    def _expire(self, request_id: str) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None or entry.future.done():
            return
        logger.warning("file %s timed out: node=%s request=%s", entry.kind, entry.node_id, request_id)
        entry.future.set_exception(RequestTimeout(entry.node_id, entry.kind, self.timeout))

    async def load_file(self, node_id: str, path: str) -> str:
        """Ask the host for a file's content. Rejects with FileRequestError or RequestTimeout."""
        logger.info("loadFile node=%s path=%s", node_id, path)
        response = await self._request(_LOAD, node_id, lambda rid: protocol.load_file(path, node_id, rid))
        return str(response.get("content", ""))

    async def save_file(self, node_id: str, path: str, content: str) -> None:
        logger.info("saveFile node=%s path=%s (%d chars)", node_id, path, len(content))
        await self._request(_SAVE, node_id, lambda rid: protocol.save_file(path, content, node_id, rid))

    def create_file(self, path: str, content: str) -> None:
        """Ask the host to create a workspace file. No acknowledgment."""
        self._channel.send(protocol.create_file(path, content))

    def _match(self, message: dict[str, Any]) -> _Pending | None:
        accepts = _ACCEPTS.get(message["type"], frozenset())
        node_id = message.get("nodeId")
        request_id = message.get("requestId")
        if request_id is not None:
            entry = self._pending.get(request_id)
            if entry is not None and entry.node_id == node_id and entry.kind in accepts:
                return entry
            return None
        for entry in self._pending.values():
            if entry.node_id == node_id and entry.kind in accepts:
                return entry
        return None

    def handle_response(self, message: dict[str, Any]) -> bool:
        """Route a file response to its pending request. False if nothing matched."""
        entry = self._match(message)
        if entry is None:
            logger.debug(
                "unmatched %s for node %s (stale or timed out)", message["type"], message.get("nodeId")
            )
            return False
        self._discard(entry.request_id)
        if entry.future.done():
            return False
        if message["type"] == protocol.FILE_CONTENT_ERROR:
            entry.future.set_exception(_file_error(entry.node_id, message))
        else:
            state = self._states.get(entry.node_id)
            if state is not None and "lastModified" in message:
                state.last_modified = message["lastModified"]
            entry.future.set_result(message)
        return True

    # ------------------------------------------------------------------
    # Node state machine
    # ------------------------------------------------------------------

    def state(self, node_id: str) -> FileNodeState:
        if node_id not in self._states:
            self._states[node_id] = FileNodeState(node_id)
        return self._states[node_id]

    def _tracked(self, node_id: str, path: str) -> FileNodeState:
        """State for node_id at path; state recorded for another path starts over."""
        state = self._states.get(node_id)
        if state is None or state.path not in (None, path):
            state = self._states[node_id] = FileNodeState(node_id)
        state.path = path
        return state

    def _file_path(self, node_id: str) -> str:
        node = self._store.get_node(node_id)
        if node is None or not node.is_file or not node.file:
            msg = f"Node {node_id} is not a file-backed node"
            raise NodeStateError(msg)
        return node.file

    async def refresh(self, node_id: str) -> str | None:
        """Reload a node's file into the store. None when frozen by editing."""
        path = self._file_path(node_id)
        state = self._tracked(node_id, path)
        if state.mode is NodeMode.EDITING:
            logger.debug("reload of %s skipped: editing", node_id)
            return None
        state.mode = NodeMode.LOADING
        state.error = None
        try:
            content = await self.load_file(node_id, path)
        except (FileRequestError, RequestTimeout) as exc:
            if state.mode is NodeMode.LOADING:
                state.mode = NodeMode.ERROR
                state.error = str(exc)
            logger.warning("load failed for %s: %s", node_id, exc)
            raise
        if self._states.get(node_id) is not state:
            logger.info("discarding loaded content for %s: node changed during load", node_id)
            return None
        if state.mode is NodeMode.EDITING:
            logger.info("discarding loaded content for %s: editing began", node_id)
            return None
        state.mode = NodeMode.VIEWING
        state.loaded = True
        self._store.update_node_data(node_id, {"content": content, "lastModified": state.last_modified})
        return content

    async def refresh_many(self, node_ids: Iterable[str]) -> dict[str, str | None]:
        """Reload several nodes concurrently. Failures are logged and left in ERROR."""
        ids = list(node_ids)
        results = await asyncio.gather(*(self.refresh(i) for i in ids), return_exceptions=True)
        loaded: dict[str, str | None] = {}
        for node_id, result in zip(ids, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, (FileRequestError, RequestTimeout, NodeStateError)):
                    raise result
                continue
            loaded[node_id] = result
        return loaded

    def file_node_ids(self) -> list[str]:
        return [n.id for n in self._store.nodes if n.is_file and n.file]

    async def refresh_unloaded(self) -> dict[str, str | None]:
        """Reload every file-backed node that has not loaded successfully yet."""
        return await self.refresh_many(
            i for i in self.file_node_ids() if not (i in self._states and self._states[i].loaded)
        )

    def begin_edit(self, node_id: str) -> None:
        state = self._tracked(node_id, self._file_path(node_id))
        state.mode = NodeMode.EDITING
        state.error = None

    def end_edit(self, node_id: str) -> None:
        state = self._states.get(node_id)
        if state is not None and state.mode is NodeMode.EDITING:
            state.mode = NodeMode.VIEWING

    async def update_content(self, node_id: str, content: str) -> None:
        """Apply an edit and save it to the file the edit was started on."""
        state = self._states.get(node_id)
        if state is None or state.mode is not NodeMode.EDITING:
            mode = state.mode.value if state is not None else NodeMode.VIEWING.value
            msg = f"Node {node_id} is not being edited ({mode})"
            raise NodeStateError(msg)
        path = self._file_path(node_id)
        if path != state.path:
            msg = f"Node {node_id} now points at {path}, edit was started on {state.path}"
            raise NodeStateError(msg)
        self._store.update_node_data(node_id, {"content": content})
        try:
            await self.save_file(node_id, path, content)
        except (FileRequestError, RequestTimeout) as exc:
            state.error = str(exc)
            logger.warning("save failed for %s: %s", node_id, exc)
            raise
        state.error = None
        if state.last_modified is not None:
            self._store.update_node_data(node_id, {"lastModified": state.last_modified})

    async def relink(self, node_id: str, new_path: str) -> str | None:
        """Point a file node at another path and load it."""
        self._file_path(node_id)
        state = self._states.get(node_id)
        if state is not None and state.mode is NodeMode.EDITING:
            msg = f"Node {node_id} is being edited"
            raise NodeStateError(msg)
        self._store.update_node_data(node_id, {"file": new_path, "content": None, "lastModified": None})
        self._states.pop(node_id, None)
        return await self.refresh(node_id)
