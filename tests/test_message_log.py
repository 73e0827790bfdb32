"""Tests for the memory and journal-file message logs."""
import asyncio
import json

import pytest

from chat_relay.errors import StorageError
from chat_relay.models import MessageDraft
from chat_relay.storage.file_message_log import FileMessageLog
from chat_relay.storage.memory_message_log import MemoryMessageLog


@pytest.fixture(params=["memory", "file"])
def log(request, tmp_path):
    if request.param == "memory":
        return MemoryMessageLog()
    return FileMessageLog(tmp_path / "messages.jsonl")


def _draft(content: str, user_id=None, sender_name="alice") -> MessageDraft:
    return MessageDraft(content=content, user_id=user_id, sender_name=sender_name)


def test_tail_on_empty_log(log):
    assert log.tail(5) == []
    assert log.tail(0) == []


def test_tail_returns_last_n_in_append_order(log):
    for i in range(10):
        log.append(_draft(f"m{i}"))
    assert [m.content for m in log.tail(3)] == ["m7", "m8", "m9"]


def test_tail_returns_everything_when_log_is_smaller(log):
    for i in range(3):
        log.append(_draft(f"m{i}"))
    assert [m.content for m in log.tail(200)] == ["m0", "m1", "m2"]


def test_append_assigns_id_and_timestamp(log):
    stored = log.append(_draft("hello", user_id="u1", sender_name="alice"))
    assert stored.id
    assert stored.delivered is False
    assert stored.created_at.tzinfo is not None

    [read_back] = log.tail(1)
    assert read_back == stored
    assert (read_back.content, read_back.user_id, read_back.sender_name) == ("hello", "u1", "alice")


def test_ids_unique_and_timestamps_non_decreasing(log):
    messages = [log.append(_draft(f"m{i}")) for i in range(50)]
    assert len({m.id for m in messages}) == 50
    stamps = [m.created_at for m in messages]
    assert stamps == sorted(stamps)


def test_mark_delivered_once(log):
    stored = log.append(_draft("hello"))
    assert log.mark_delivered(stored.id) is True
    assert log.mark_delivered(stored.id) is False
    assert log.tail(1)[0].delivered is True
    # the returned copy is not mutated
    assert stored.delivered is False


def test_mark_delivered_unknown_id(log):
    log.append(_draft("hello"))
    assert log.mark_delivered("does-not-exist") is False


@pytest.mark.asyncio
async def test_async_variants(log):
    stored = await log.append_async(_draft("async hello"))
    assert (await log.tail_async(1))[0].id == stored.id
    assert await log.mark_delivered_async(stored.id) is True
    assert (await log.tail_async(1))[0].delivered is True


@pytest.mark.asyncio
async def test_file_log_tail_async_waits_off_the_event_loop(tmp_path):
    log = FileMessageLog(tmp_path / "messages.jsonl")
    log.append(_draft("a"))

    log._lock.acquire()  # a write is in flight on another thread
    try:
        task = asyncio.ensure_future(log.tail_async(10))
        await asyncio.sleep(0.05)
        assert not task.done()
    finally:
        log._lock.release()
    assert [m.content for m in await task] == ["a"]


def test_file_log_survives_restart(tmp_path):
    path = tmp_path / "messages.jsonl"
    first = FileMessageLog(path)
    a = first.append(_draft("a"))
    b = first.append(_draft("b"))
    first.mark_delivered(a.id)

    reopened = FileMessageLog(path)
    tail = reopened.tail(10)
    assert [m.id for m in tail] == [a.id, b.id]
    assert [m.delivered for m in tail] == [True, False]
    # timestamps keep increasing after a restart
    c = reopened.append(_draft("c"))
    assert c.created_at >= b.created_at


def test_file_log_skips_torn_trailing_record(tmp_path):
    path = tmp_path / "messages.jsonl"
    log = FileMessageLog(path)
    kept = log.append(_draft("kept"))
    with open(path, "a", encoding="utf-8") as f:
        f.write('{"op": "append", "message": {"id": "x", "con')

    reopened = FileMessageLog(path)
    assert [m.id for m in reopened.tail(10)] == [kept.id]

    # the next record starts on its own line and is readable again
    later = reopened.append(_draft("later"))
    again = FileMessageLog(path)
    assert [m.id for m in again.tail(10)] == [kept.id, later.id]


def test_file_log_journal_format(tmp_path):
    path = tmp_path / "messages.jsonl"
    log = FileMessageLog(path)
    stored = log.append(_draft("hi"))
    log.mark_delivered(stored.id)

    records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert records[0]["op"] == "append"
    assert records[0]["message"]["id"] == stored.id
    assert records[1] == {"op": "delivered", "id": stored.id}


def test_file_log_write_failure_is_fail_closed(tmp_path, monkeypatch):
    log = FileMessageLog(tmp_path / "messages.jsonl")
    existing = log.append(_draft("before"))

    def broken_open(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr("builtins.open", broken_open)
    with pytest.raises(StorageError):
        log.append(_draft("lost"))
    with pytest.raises(StorageError):
        log.mark_delivered(existing.id)
    monkeypatch.undo()

    # nothing changed in memory
    assert [m.content for m in log.tail(10)] == ["before"]
    assert log.tail(1)[0].delivered is False
