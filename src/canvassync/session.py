"""CanvasSession: one open canvas document bound to one host channel.

    channel = LoopbackChannel()
    with CanvasSession(channel) as session:       # start(): subscribe + send `ready`
        channel.deliver({"type": "loadContent", "content": text})
        session.store.create_node(Position(0, 0))  # -> `save` after the debounce

The session owns the store, the sync engine and the file manager for its
document; close() tears all three down. Inbound messages are routed by type;
malformed loadContent payloads are logged and leave the document unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from canvassync import protocol
from canvassync.config import CanvasConfig
from canvassync.errors import ParseError
from canvassync.files import FileNodeManager
from canvassync.store import DocumentStore
from canvassync.sync import SyncEngine
from canvassync.timers import LoopScheduler

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from canvassync.channel import HostChannel
    from canvassync.models import Graph
    from canvassync.timers import Scheduler

logger = logging.getLogger("canvassync.session")


class CanvasSession:
    def __init__(
        self,
        channel: HostChannel,
        *,
        config: CanvasConfig | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        cfg = config or CanvasConfig(root=Path.cwd())
        self.config = cfg
        self.channel = channel
        self.scheduler = scheduler or LoopScheduler()
        self.store = DocumentStore(
            new_node_text=cfg.canvas.new_node_text,
            node_size=(cfg.canvas.default_width, cfg.canvas.default_height),
            file_node_size=(cfg.canvas.file_node_width, cfg.canvas.file_node_height),
        )
        self.sync = SyncEngine(
            self.store,
            channel,
            self.scheduler,
            debounce=cfg.sync.debounce,
            load_guard=cfg.sync.load_guard,
            indent=cfg.sync.indent,
            default_width=cfg.canvas.default_width,
            default_height=cfg.canvas.default_height,
        )
        self.files = FileNodeManager(self.store, channel, self.scheduler, timeout=cfg.files.request_timeout_s)
        self.api_key: str | None = None
        self.last_error: Exception | None = None
        self._remove_handler: Callable[[], None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin observing the store and the channel, then handshake."""
        if self._remove_handler is not None:
            return
        self.sync.attach()
        self.files.attach()
        self._remove_handler = self.channel.on_message(self.handle_message)
        self.channel.send(protocol.ready())
        logger.info("session started")

    def close(self) -> None:
        if self._remove_handler is not None:
            self._remove_handler()
            self._remove_handler = None
        self.sync.detach()
        self.files.close()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        logger.info("session closed")

    def __enter__(self) -> CanvasSession:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Inbound routing
    # ------------------------------------------------------------------

    def handle_message(self, message: dict[str, Any]) -> None:
        msg_type = message.get("type")
        if msg_type == protocol.LOAD_CONTENT:
            try:
                self.load(message["content"])
            except ParseError as exc:
                self.last_error = exc
                logger.warning("loadContent rejected, keeping current document: %s", exc)
        elif msg_type in protocol.FILE_RESPONSES:
            self.files.handle_response(message)
        elif msg_type == protocol.API_KEY:
            self.api_key = protocol.api_key_of(message)
            logger.info("api key %s", "received" if self.api_key else "empty")
        else:
            logger.debug("ignoring %s message", msg_type)

    def load(self, content: str) -> Graph:
        """Replace the document; raises ParseError and keeps the old one on bad input."""
        graph = self.sync.load_content(content)
        self.last_error = None
        if self.config.files.autoload:
            ids = self.files.file_node_ids()
            if ids:
                self._spawn(self.files.refresh_many(ids))
        return graph

    def request_api_key(self) -> None:
        self.channel.send(protocol.get_api_key())

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("no running loop, file autoload skipped")
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("background task failed", exc_info=task.exception())

    async def wait_background(self) -> None:
        """Wait for autoload work started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


async def serve(config_root: Path | None = None) -> None:
    """Run one session over stdin/stdout until the host closes the stream."""
    from canvassync.channel import StdioChannel
    from canvassync.config import load_config

    cfg = load_config(config_root)
    channel = await StdioChannel.connect(limit=cfg.host.max_line_bytes)
    session = CanvasSession(channel, config=cfg)
    session.start()
    try:
        await channel.run()
    finally:
        session.sync.flush()
        session.close()


def run_server(config_root: Path | None = None) -> None:
    """Entry point for `canvassync serve`."""
    asyncio.run(serve(config_root))
