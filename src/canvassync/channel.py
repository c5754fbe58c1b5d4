"""Host bridges: the opaque bidirectional channel a session talks through.

A channel is injected at construction; nothing discovers a host implicitly.

    NullChannel       standalone mode, outbound messages are logged and dropped
    LoopbackChannel   in-process host: records outbound, deliver() injects inbound
    StdioChannel      JSON lines over stdin/stdout (one message per line)
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Any, Protocol

from canvassync import protocol
from canvassync.errors import ProtocolError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("canvassync.channel")

# A loadContent line carries the whole document
DEFAULT_LINE_LIMIT = 64 * 1024 * 1024


class HostChannel(Protocol):
    def send(self, message: dict[str, Any]) -> None: ...

    def on_message(self, handler: Callable[[dict[str, Any]], None]) -> Callable[[], None]: ...


class _HandlerList:
    """Inbound handler registry shared by the concrete channels."""

    def __init__(self) -> None:
        self._handlers: list[Callable[[dict[str, Any]], None]] = []

    def on_message(self, handler: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        self._handlers.append(handler)

        def remove() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return remove

    def _dispatch(self, message: dict[str, Any]) -> None:
        for handler in list(self._handlers):
            try:
                handler(message)
            except Exception:
                logger.exception("handler failed for %s message", message.get("type"))


class NullChannel(_HandlerList):
    def send(self, message: dict[str, Any]) -> None:
        logger.debug("no host, dropping %s message", message.get("type"))


class LoopbackChannel(_HandlerList):
    """In-process channel. Tests and embedders play the host through it."""

    def __init__(self) -> None:
        super().__init__()
        self.sent: list[dict[str, Any]] = []

    def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    def sent_of(self, msg_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == msg_type]

    def deliver(self, message: dict[str, Any]) -> None:
        """Hand an inbound message to the handlers (validated first)."""
        self._dispatch(protocol.validate(message))


class StdioChannel(_HandlerList):
    """Newline-delimited JSON over a stream pair."""

    def __init__(self, reader: asyncio.StreamReader, write: Callable[[bytes], None]) -> None:
        super().__init__()
        self._reader = reader
        self._write = write

    @classmethod
    async def connect(cls, limit: int = DEFAULT_LINE_LIMIT) -> StdioChannel:
        """Attach to this process's stdin/stdout. Lines longer than limit bytes are dropped."""
        reader = asyncio.StreamReader(limit=limit)
        loop = asyncio.get_running_loop()
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
        transport, _ = await loop.connect_write_pipe(asyncio.BaseProtocol, sys.stdout.buffer)
        return cls(reader, transport.write)

    def send(self, message: dict[str, Any]) -> None:
        self._write(protocol.encode(message))

    async def run(self) -> None:
        """Read and dispatch messages until EOF."""
        while True:
            try:
                line = await self._reader.readline()
            except (asyncio.IncompleteReadError, EOFError):
                break
            except ValueError as exc:
                # readline() reports an over-limit line as ValueError and discards it
                logger.warning("dropping oversized inbound line: %s", exc)
                continue
            if not line:
                break
            if not line.strip():
                continue
            try:
                message = protocol.decode(line)
            except ProtocolError as exc:
                logger.warning("dropping inbound message: %s", exc)
                continue
            self._dispatch(message)
        logger.info("host channel closed")
