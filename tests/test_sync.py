import json
import warnings
from pathlib import Path

import pytest

import canvassync.sync
from canvassync.errors import ParseError
from canvassync.models import Position
from canvassync.sync import SyncEngine, SyncState


def _saves(channel):
    return [json.loads(m["content"]) for m in channel.sent_of("save")]


def test_mutation_saves_after_debounce(store, channel, scheduler, engine):
    store.create_node(Position(1, 2))
    assert engine.state is SyncState.DIRTY

    scheduler.advance(0.49)
    assert _saves(channel) == []

    scheduler.advance(0.01)
    saves = _saves(channel)
    assert len(saves) == 1
    assert saves[0]["nodes"][0]["text"] == "New note"
    assert engine.state is SyncState.IDLE


def test_mutations_within_window_coalesce(store, channel, scheduler, engine):
    node = store.create_node(Position())
    for i in range(5):
        scheduler.advance(0.1)
        store.update_node_data(node.id, {"text": f"v{i}"})

    scheduler.advance(0.49)
    assert _saves(channel) == []

    scheduler.advance(0.01)
    saves = _saves(channel)
    assert len(saves) == 1
    assert saves[0]["nodes"][0]["text"] == "v4"


def test_save_payload_is_indented_persisted_json(store, channel, scheduler, engine):
    store.create_node(Position(3, 4))
    scheduler.advance(0.5)

    content = channel.sent_of("save")[0]["content"]
    assert content == json.dumps(json.loads(content), indent=2, ensure_ascii=False)


def test_load_never_echoes_a_save(channel, scheduler, engine, sample_text):
    engine.load_content(sample_text)
    assert engine.state is SyncState.LOADING

    scheduler.advance(0.1)
    assert engine.state is SyncState.IDLE

    scheduler.advance(5)
    assert channel.sent_of("save") == []


def test_mutations_during_guard_are_ignored(store, channel, scheduler, engine, sample_text):
    engine.load_content(sample_text)

    store.update_node_data("a", {"text": "during load"})
    scheduler.advance(5)

    assert channel.sent_of("save") == []


def test_mutation_after_guard_saves(store, channel, scheduler, engine, sample_text):
    engine.load_content(sample_text)
    scheduler.advance(0.1)

    store.update_node_data("a", {"text": "edited"})
    scheduler.advance(0.5)

    saves = _saves(channel)
    assert len(saves) == 1
    assert saves[0]["nodes"][0]["text"] == "edited"
    # defaults are normalized into the save
    assert saves[0]["nodes"][1]["width"] == 250
    assert saves[0]["edges"][1]["fromSide"] == "right"


def test_load_replaces_store(store, engine, sample_text):
    store.create_node(Position())

    graph = engine.load_content(sample_text)

    assert [n.id for n in store.nodes] == ["a", "b", "f"]
    assert graph.nodes == store.nodes


def test_bad_load_keeps_document(store, channel, scheduler, engine, sample_text):
    engine.load_content(sample_text)
    scheduler.advance(0.1)
    before = store.snapshot()

    with pytest.raises(ParseError):
        engine.load_content("{broken")

    assert store.snapshot() == before
    assert engine.state is SyncState.IDLE


def test_load_discards_pending_save(store, channel, scheduler, engine, sample_text, caplog):
    store.create_node(Position())
    scheduler.advance(0.2)

    engine.load_content(sample_text)
    scheduler.advance(2)

    assert channel.sent_of("save") == []
    assert "supersedes unsaved changes" in caplog.text


def test_data_bag_only_changes_do_not_save(store, channel, scheduler, engine, sample_text):
    engine.load_content(sample_text)
    scheduler.advance(0.1)

    store.update_node_data("f", {"content": "# file body", "lastModified": 1700})
    assert engine.state is SyncState.IDLE
    scheduler.advance(0.5)

    assert channel.sent_of("save") == []


def test_data_bag_change_does_not_extend_pending_save(store, channel, scheduler, engine, sample_text):
    engine.load_content(sample_text)
    scheduler.advance(0.1)

    store.update_node_data("a", {"text": "edited"})
    scheduler.advance(0.4)
    store.update_node_data("f", {"content": "# file body"})
    scheduler.advance(0.1)

    assert len(channel.sent_of("save")) == 1


def test_burst_that_cancels_out_still_saves_once(store, channel, scheduler, engine):
    node = store.create_node(Position())
    scheduler.advance(0.5)
    assert len(channel.sent_of("save")) == 1

    store.move_node(node.id, 5, 5)
    store.move_node(node.id, 0, 0)
    scheduler.advance(0.5)

    saves = _saves(channel)
    assert len(saves) == 2
    assert saves[1] == saves[0]


def test_identical_edit_is_saved_again(store, channel, scheduler, engine):
    node = store.create_node(Position())
    scheduler.advance(0.5)
    store.update_node_data(node.id, {"text": "other"})
    scheduler.advance(0.5)
    store.update_node_data(node.id, {"text": "New note"})
    scheduler.advance(0.5)

    saves = _saves(channel)
    assert len(saves) == 3
    assert saves[2] == saves[0]


def test_flush_saves_immediately(store, channel, scheduler, engine):
    store.create_node(Position())

    assert engine.flush() is True
    assert len(channel.sent_of("save")) == 1

    scheduler.advance(1)
    assert len(channel.sent_of("save")) == 1
    assert engine.flush() is False


def test_hold_defers_save_until_release(store, channel, scheduler, engine):
    engine.hold()
    store.create_node(Position())
    scheduler.advance(1)
    assert channel.sent_of("save") == []

    engine.release()
    assert len(channel.sent_of("save")) == 1


def test_detach_stops_observing(store, channel, scheduler, engine):
    store.create_node(Position())
    engine.detach()
    scheduler.advance(1)
    store.create_node(Position())
    scheduler.advance(1)

    assert channel.sent_of("save") == []


def test_configured_timings(store, channel, scheduler):
    eng = SyncEngine(store, channel, scheduler, debounce=2.0, load_guard=1.0, indent=None)
    eng.attach()

    eng.load_content('{"nodes": [], "edges": []}')
    scheduler.advance(0.5)
    store.create_node(Position())
    scheduler.advance(0.6)
    store.create_node(Position())
    scheduler.advance(1.9)
    assert channel.sent_of("save") == []

    scheduler.advance(0.1)
    content = channel.sent_of("save")[0]["content"]
    assert "\n" not in content
    assert len(json.loads(content)["nodes"]) == 1


def test_module_source_compiles_without_warnings():
    source = Path(canvassync.sync.__file__).read_text(encoding="utf-8")

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(source, canvassync.sync.__file__, "exec")
