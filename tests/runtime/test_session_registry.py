"""Tests for SessionRegistry: record keeping and debounced persistence."""

from __future__ import annotations

import asyncio
import json

import pytest

from agentrelay.runtime.errors import ValidationError
from agentrelay.runtime.managers.sessions import SessionRegistry
from agentrelay.runtime.models.enums import MessageRole, SessionStatus
from agentrelay.runtime.models.session import ChatMessage, TextBlock
from agentrelay.runtime.store.local import LocalSnapshotStore


def _message(text: str = "hi") -> ChatMessage:
    return ChatMessage(role=MessageRole.USER, content=[TextBlock(text=text)])


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def test_create_defaults() -> None:
    registry = SessionRegistry()
    session = registry.create(None, "/work", "model-a")

    assert session.name == "New Session"
    assert session.status == SessionStatus.IDLE
    assert session.resume_token is None
    assert session.total_cost == 0
    assert session.messages == []
    assert session.id in registry
    assert len(registry) == 1


@pytest.mark.parametrize("cwd", ["", "   "])
def test_create_requires_cwd(cwd: str) -> None:
    registry = SessionRegistry()
    with pytest.raises(ValidationError):
        registry.create("x", cwd, "model-a")
    assert len(registry) == 0


def test_ids_are_unique() -> None:
    registry = SessionRegistry()
    ids = {registry.create(None, "/w", "m").id for _ in range(50)}
    assert len(ids) == 50


def test_update_refreshes_last_active() -> None:
    registry = SessionRegistry()
    session = registry.create("a", "/w", "m")
    before = session.last_active_at

    updated = registry.update(session.id, name="b")

    assert updated is session
    assert session.name == "b"
    assert session.last_active_at >= before


def test_update_unknown_returns_none() -> None:
    assert SessionRegistry().update("missing", name="x") is None


def test_add_usage_accumulates() -> None:
    registry = SessionRegistry()
    session = registry.create(None, "/w", "m")

    registry.add_usage(session.id, cost=0.01, input_tokens=100, output_tokens=10)
    registry.add_usage(session.id, cost=0.02, input_tokens=50, output_tokens=5)

    assert session.total_cost == pytest.approx(0.03)
    assert session.total_input_tokens == 150
    assert session.total_output_tokens == 15


def test_history_is_a_copy() -> None:
    registry = SessionRegistry()
    session = registry.create(None, "/w", "m")
    registry.append_message(session.id, _message())

    history = registry.history(session.id)
    history.clear()

    assert len(registry.history(session.id)) == 1
    assert registry.history("missing") == []


def test_list_omits_messages() -> None:
    registry = SessionRegistry()
    session = registry.create(None, "/w", "m")
    registry.append_message(session.id, _message())

    [summary] = registry.list()
    assert summary.id == session.id
    assert summary.message_count == 1
    assert "messages" not in summary.model_dump()


def test_delete() -> None:
    registry = SessionRegistry()
    session = registry.create(None, "/w", "m")

    assert registry.delete(session.id) is True
    assert registry.get(session.id) is None
    assert registry.delete(session.id) is False


def test_snapshot_excludes_messages() -> None:
    registry = SessionRegistry()
    session = registry.create(None, "/w", "m")
    registry.append_message(session.id, _message("secret prompt"))

    [record] = registry.snapshot()
    assert "messages" not in record
    assert "secret prompt" not in json.dumps(record)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


async def test_mutations_coalesce_into_one_write(tmp_path) -> None:
    store = LocalSnapshotStore(tmp_path)
    registry = SessionRegistry(store, persist_delay=0.05)

    session = registry.create("a", "/w", "m")
    assert registry.save_pending
    registry.update(session.id, name="b")
    registry.create("c", "/w", "m")
    assert not store.path.exists()

    await asyncio.sleep(0.2)

    assert not registry.save_pending
    records = await store.read_snapshot()
    assert {r["name"] for r in records} == {"b", "c"}


async def test_later_mutations_do_not_postpone_write(tmp_path) -> None:
    store = LocalSnapshotStore(tmp_path)
    registry = SessionRegistry(store, persist_delay=0.2)

    session = registry.create("a", "/w", "m")
    await asyncio.sleep(0.15)
    registry.update(session.id, name="b")
    await asyncio.sleep(0.13)

    # Written at ~0.2s; a delay restarted by the update would end at ~0.35s.
    assert store.path.exists()
    [record] = await store.read_snapshot()
    assert record["name"] == "b"


async def test_flush_waits_for_write_in_progress() -> None:
    class SlowStore:
        def __init__(self) -> None:
            self.writes: list[list[str]] = []
            self.active = 0
            self.overlapped = False

        async def write_snapshot(self, records):
            self.active += 1
            self.overlapped = self.overlapped or self.active > 1
            await asyncio.sleep(0.05)
            self.writes.append([r["name"] for r in records])
            self.active -= 1

        async def read_snapshot(self):
            raise FileNotFoundError

    store = SlowStore()
    registry = SessionRegistry(store, persist_delay=0.01)
    session = registry.create("a", "/w", "m")
    await asyncio.sleep(0.03)

    registry.update(session.id, name="b")
    await registry.flush()

    assert not store.overlapped
    assert store.writes == [["a"], ["b"]]


async def test_append_message_does_not_schedule_write(tmp_path) -> None:
    registry = SessionRegistry(LocalSnapshotStore(tmp_path), persist_delay=0.05)
    session = registry.create(None, "/w", "m")
    await registry.flush()

    registry.append_message(session.id, _message())

    assert not registry.save_pending


async def test_flush_writes_immediately(tmp_path) -> None:
    store = LocalSnapshotStore(tmp_path)
    registry = SessionRegistry(store, persist_delay=60)
    registry.create("a", "/w", "m")

    await registry.flush()

    assert not registry.save_pending
    assert len(await store.read_snapshot()) == 1


async def test_load_roundtrip_drops_messages(tmp_path) -> None:
    store = LocalSnapshotStore(tmp_path)
    registry = SessionRegistry(store)
    session = registry.create("a", "/w", "m")
    registry.update(session.id, resume_token="tok-1")
    registry.add_usage(session.id, cost=0.5, input_tokens=3, output_tokens=4)
    registry.append_message(session.id, _message())
    await registry.flush()

    restored = SessionRegistry(store)
    assert await restored.load() == 1

    loaded = restored.get(session.id)
    assert loaded is not None
    assert loaded.name == "a"
    assert loaded.resume_token == "tok-1"
    assert loaded.total_cost == pytest.approx(0.5)
    assert loaded.total_output_tokens == 4
    assert loaded.messages == []


async def test_load_missing_snapshot(tmp_path) -> None:
    registry = SessionRegistry(LocalSnapshotStore(tmp_path))
    assert await registry.load() == 0
    assert len(registry) == 0


async def test_load_corrupt_snapshot_starts_empty(tmp_path) -> None:
    store = LocalSnapshotStore(tmp_path)
    store.path.write_text("][", encoding="utf-8")

    registry = SessionRegistry(store)

    assert await registry.load() == 0
    assert len(registry) == 0


async def test_load_invalid_record_starts_empty(tmp_path) -> None:
    store = LocalSnapshotStore(tmp_path)
    await store.write_snapshot([{"id": "a", "cwd": "/w", "model": "m", "total_cost": -1}])

    registry = SessionRegistry(store)

    assert await registry.load() == 0


async def test_load_marks_running_sessions_as_error(tmp_path) -> None:
    store = LocalSnapshotStore(tmp_path)
    registry = SessionRegistry(store)
    running = registry.create("r", "/w", "m")
    idle = registry.create("i", "/w", "m")
    registry.update(running.id, status=SessionStatus.RUNNING)
    await registry.flush()

    restored = SessionRegistry(store, persist_delay=0.01)
    await restored.load()

    assert restored.get(running.id).status == SessionStatus.ERROR
    assert restored.get(idle.id).status == SessionStatus.IDLE
    assert restored.save_pending
    await restored.flush()


async def test_failed_write_is_logged_not_raised(tmp_path) -> None:
    class BrokenStore:
        async def write_snapshot(self, records):
            raise OSError("disk full")

        async def read_snapshot(self):
            raise FileNotFoundError

    registry = SessionRegistry(BrokenStore())
    registry.create("a", "/w", "m")

    await registry.flush()

    assert not registry.save_pending
