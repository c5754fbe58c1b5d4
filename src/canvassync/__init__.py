"""Canvas document synchronization engine.

A live graph (nodes + edges) kept losslessly convertible to the on-disk
.canvas JSON format, persisted to a host through a message channel, with
file-backed nodes whose content lives in external files.

Layout:
    converter   persisted <-> internal graph mapping (pure)
    store       DocumentStore: the live graph + change subscriptions
    sync        SyncEngine: debounced `save`, load suppression
    files       FileNodeManager: correlated loadFile/saveFile requests
    protocol    message shapes exchanged with the host
    channel     host bridges (null, loopback, stdio JSON lines)
    session     CanvasSession: one open document wired to one channel

Message flow:
    host --loadContent--> SyncEngine --to_internal--> DocumentStore
    DocumentStore --change--> SyncEngine --(500 ms)--> to_persisted --save--> host
    FileNodeManager --loadFile/saveFile--> host --fileContent*--> DocumentStore
"""

from canvassync.channel import LoopbackChannel, NullChannel, StdioChannel
from canvassync.config import CanvasConfig, init_config, load_config
from canvassync.converter import normalize, to_internal, to_persisted
from canvassync.files import FileNodeManager, NodeMode
from canvassync.models import CanvasEdge, CanvasNode, Graph, Position
from canvassync.session import CanvasSession
from canvassync.store import DocumentStore
from canvassync.sync import SyncEngine, SyncState
from canvassync.timers import LoopScheduler, VirtualScheduler

__all__ = [
    "CanvasConfig",
    "CanvasEdge",
    "CanvasNode",
    "CanvasSession",
    "DocumentStore",
    "FileNodeManager",
    "Graph",
    "LoopScheduler",
    "LoopbackChannel",
    "NodeMode",
    "NullChannel",
    "Position",
    "StdioChannel",
    "SyncEngine",
    "SyncState",
    "VirtualScheduler",
    "init_config",
    "load_config",
    "normalize",
    "to_internal",
    "to_persisted",
]
