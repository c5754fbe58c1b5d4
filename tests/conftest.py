import asyncio
import json

import pytest

from canvassync.channel import LoopbackChannel
from canvassync.files import FileNodeManager
from canvassync.store import DocumentStore
from canvassync.sync import SyncEngine
from canvassync.timers import VirtualScheduler

SAMPLE = {
    "nodes": [
        {"id": "a", "x": 0, "y": 0, "width": 300, "height": 120, "type": "text", "text": "alpha", "color": "2"},
        {"id": "b", "x": 400, "y": 0, "type": "text", "text": "beta"},
        {"id": "f", "x": 0, "y": 300, "width": 400, "height": 400, "type": "file", "file": "notes/f.md"},
    ],
    "edges": [
        {"id": "e1", "fromNode": "a", "fromSide": "bottom", "toNode": "b", "toSide": "top", "label": "next"},
        {"id": "e2", "fromNode": "b", "toNode": "f"},
    ],
}


@pytest.fixture
def sample_doc():
    return json.loads(json.dumps(SAMPLE))


@pytest.fixture
def sample_text(sample_doc):
    return json.dumps(sample_doc)


@pytest.fixture
def scheduler():
    return VirtualScheduler()


@pytest.fixture
def channel():
    return LoopbackChannel()


@pytest.fixture
def store():
    return DocumentStore()


@pytest.fixture
def engine(store, channel, scheduler):
    eng = SyncEngine(store, channel, scheduler)
    eng.attach()
    yield eng
    eng.detach()


@pytest.fixture
def manager(store, channel, scheduler):
    mgr = FileNodeManager(store, channel, scheduler)
    mgr.attach()
    remove = channel.on_message(mgr.handle_response)
    yield mgr
    remove()
    mgr.close()


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run up to their next await."""
    for _ in range(rounds):
        await asyncio.sleep(0)
