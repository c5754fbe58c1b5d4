"""Exception taxonomy.

Converter and store never raise; parsing raises ParseError; file-node requests
reject with FileRequestError subclasses or RequestTimeout.
"""

from __future__ import annotations


class CanvasSyncError(Exception):
    """Base class for every error raised by canvassync."""


class ParseError(CanvasSyncError):
    """Persisted canvas content is not a well-formed document."""


class ProtocolError(CanvasSyncError):
    """An inbound message does not match the envelope contract."""


class FileRequestError(CanvasSyncError):
    """The host reported a failure for a loadFile/saveFile request."""

    def __init__(self, node_id: str, reason: str) -> None:
        super().__init__(reason)
        self.node_id = node_id
        self.reason = reason


class FileNotFound(FileRequestError):
    pass


class FileAccessError(FileRequestError):
    pass


class RequestTimeout(CanvasSyncError):
    """No correlated response arrived before the request deadline."""

    def __init__(self, node_id: str, kind: str, timeout: float) -> None:
        super().__init__(f"File {kind} timeout for node {node_id} after {timeout:g}s")
        self.node_id = node_id
        self.kind = kind
        self.timeout = timeout


class ReferentialInconsistency(CanvasSyncError):
    """One or more edges reference node ids that do not exist."""

    def __init__(self, edge_ids: list[str]) -> None:
        super().__init__(f"Edges reference missing nodes: {', '.join(edge_ids)}")
        self.edge_ids = edge_ids


class NodeStateError(CanvasSyncError):
    """A file-node operation is not valid in the node's current mode."""
