"""Message envelopes exchanged between the engine and its host.

Every message is a JSON object tagged by "type":

    host -> engine
        loadContent        content                      full document replace
        fileContentLoaded  nodeId, content, requestId?, lastModified?
        fileContentError   nodeId, error, requestId?, code?
        fileContentSaved   nodeId, requestId?, lastModified?
        groqApiKey         apiKey                       config for consumers outside the core

    engine -> host
        ready                                           startup handshake
        save               content                      persist the canvas document
        loadFile           filePath, nodeId, requestId
        saveFile           filePath, content, nodeId, requestId
        createFile         filePath, content            fire-and-forget
        getGroqApiKey

requestId is the per-call correlation id. Hosts that do not echo it are
still served: responses are then matched by nodeId alone.

This module holds shapes only; routing lives in canvassync.session.
"""

from __future__ import annotations

import json
from typing import Any

from canvassync.errors import ProtocolError

# Inbound
LOAD_CONTENT = "loadContent"
FILE_CONTENT_LOADED = "fileContentLoaded"
FILE_CONTENT_ERROR = "fileContentError"
FILE_CONTENT_SAVED = "fileContentSaved"
API_KEY = "groqApiKey"

# Outbound
READY = "ready"
SAVE = "save"
LOAD_FILE = "loadFile"
SAVE_FILE = "saveFile"
CREATE_FILE = "createFile"
GET_API_KEY = "getGroqApiKey"

FILE_RESPONSES = frozenset({FILE_CONTENT_LOADED, FILE_CONTENT_ERROR, FILE_CONTENT_SAVED})

# Required string fields per inbound type
_INBOUND_FIELDS: dict[str, tuple[str, ...]] = {
    LOAD_CONTENT: ("content",),
    FILE_CONTENT_LOADED: ("nodeId", "content"),
    FILE_CONTENT_ERROR: ("nodeId", "error"),
    FILE_CONTENT_SAVED: ("nodeId",),
    API_KEY: (),
}


# ---------------------------------------------------------------------------
# Builders (engine -> host)
# ---------------------------------------------------------------------------


def ready() -> dict[str, Any]:
    return {"type": READY}


def save(content: str) -> dict[str, Any]:
    return {"type": SAVE, "content": content}


def load_file(file_path: str, node_id: str, request_id: str) -> dict[str, Any]:
    return {"type": LOAD_FILE, "filePath": file_path, "nodeId": node_id, "requestId": request_id}


def save_file(file_path: str, content: str, node_id: str, request_id: str) -> dict[str, Any]:
    return {
        "type": SAVE_FILE,
        "filePath": file_path,
        "content": content,
        "nodeId": node_id,
        "requestId": request_id,
    }


def create_file(file_path: str, content: str) -> dict[str, Any]:
    return {"type": CREATE_FILE, "filePath": file_path, "content": content}


def get_api_key() -> dict[str, Any]:
    return {"type": GET_API_KEY}


# ---------------------------------------------------------------------------
# Inbound validation
# ---------------------------------------------------------------------------


def validate(message: Any) -> dict[str, Any]:
    """Check the envelope of an inbound message and return it.

    Unknown types pass (the session ignores them); known types must carry
    their required fields as strings.
    """
    if not isinstance(message, dict):
        msg = f"Message must be an object, got {type(message).__name__}"
        raise ProtocolError(msg)
    msg_type = message.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        msg = "Message has no type"
        raise ProtocolError(msg)
    missing = [f for f in _INBOUND_FIELDS.get(msg_type, ()) if not isinstance(message.get(f), str)]
    if missing:
        msg = f"{msg_type} message missing {', '.join(missing)}"
        raise ProtocolError(msg)
    return message


def api_key_of(message: dict[str, Any]) -> str | None:
    key = message.get("apiKey", message.get("key"))
    return key if isinstance(key, str) and key.strip() else None


def encode(message: dict[str, Any]) -> bytes:
    """One JSON line."""
    return (json.dumps(message, ensure_ascii=False) + "\n").encode()


def decode(line: bytes | str) -> dict[str, Any]:
    try:
        obj = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        msg = f"Undecodable message: {exc}"
        raise ProtocolError(msg) from exc
    return validate(obj)
