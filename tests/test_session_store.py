import json
from datetime import datetime, timedelta, timezone

import pytest

from agent_bridge.storage.models import SessionRecord
from agent_bridge.storage.session_store import JsonSessionStore


def test_records_survive_reload(tmp_path):
    path = tmp_path / "sessions.json"
    store = JsonSessionStore(path)
    store.load()
    store.put(SessionRecord(thread_id="bot:1:10", session_id="sess-a", driver_handle="agent-bridge-abc", chat_id="1"))

    reloaded = JsonSessionStore(path)
    reloaded.load()
    record = reloaded.get("bot:1:10")
    assert record is not None
    assert record.session_id == "sess-a"
    assert record.driver_handle == "agent-bridge-abc"
    assert record.chat_id == "1"
    assert record.created_at.tzinfo is not None

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["version"] == 1
    assert "bot:1:10" in document["sessions"]


def test_missing_file_loads_empty(tmp_path):
    store = JsonSessionStore(tmp_path / "nope" / "sessions.json")
    store.load()
    assert len(store) == 0


def test_corrupt_file_loads_empty(tmp_path):
    path = tmp_path / "sessions.json"
    path.write_text("{ truncated", encoding="utf-8")
    store = JsonSessionStore(path)
    store.load()
    assert len(store) == 0


def test_bad_record_skipped(tmp_path):
    path = tmp_path / "sessions.json"
    good = SessionRecord(thread_id="t1", session_id="s1").to_dict()
    path.write_text(
        json.dumps({"version": 1, "sessions": {"t1": good, "t2": {"session_id": "s2"}}}),
        encoding="utf-8",
    )
    store = JsonSessionStore(path)
    store.load()
    assert store.get("t1") is not None
    assert store.get("t2") is None


def test_rebinding_thread_rejected(store):
    store.put(SessionRecord(thread_id="t1", session_id="s1"))
    with pytest.raises(ValueError):
        store.put(SessionRecord(thread_id="t1", session_id="s2"))
    assert store.get("t1").session_id == "s1"


def test_same_session_can_be_rewritten(store):
    record = SessionRecord(thread_id="t1", session_id="s1", driver_handle="old")
    store.put(record)
    record.driver_handle = "new"
    store.put(record)
    assert store.get("t1").driver_handle == "new"


def test_touch_updates_last_used(store):
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    store.put(SessionRecord(thread_id="t1", session_id="s1", last_used_at=past))
    store.touch("t1")
    assert store.get("t1").last_used_at > past
    store.touch("unknown")


def test_all_orders_by_recent_use(store):
    now = datetime.now(timezone.utc)
    store.put(SessionRecord(thread_id="old", session_id="s1", last_used_at=now - timedelta(days=1)))
    store.put(SessionRecord(thread_id="new", session_id="s2", last_used_at=now))
    assert [r.thread_id for r in store.all()] == ["new", "old"]


def test_no_temp_files_left_behind(tmp_path):
    store = JsonSessionStore(tmp_path / "sessions.json")
    store.put(SessionRecord(thread_id="t1", session_id="s1"))
    store.put(SessionRecord(thread_id="t2", session_id="s2"))
    assert sorted(p.name for p in tmp_path.iterdir()) == ["sessions.json"]
