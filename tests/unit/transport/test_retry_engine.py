"""
Unit tests for RetryEngine.
"""

import asyncio

import pytest

from logship.transport import (
    BackupStore,
    EventBus,
    RetryEngine,
    RetryPolicy,
    TransportEventKind,
    UnauthorizedError,
)


def _engine(sender, backup_path, *, batch_size=2, retry_limit=3, events=None):
    return RetryEngine(
        sender,
        BackupStore(backup_path),
        events or EventBus(),
        batch_size=batch_size,
        policy=RetryPolicy(retry_limit=retry_limit, backoff_factor_ms=1),
        transport_id="retry-test",
    )


@pytest.mark.asyncio
async def test_transient_then_success_no_backup(scripted_sender, backup_path, make_record):
    """A transient failure followed by success delivers once, backs up nothing."""
    sender = scripted_sender([TimeoutError("transient"), None])
    engine = _engine(sender, backup_path)
    engine.push([make_record("r1")])

    delivered = await engine.run_cycle()

    assert delivered == 1
    assert sender.delivered_messages == ["r1"]
    assert len(sender.calls) == 2
    assert engine.pending == 0
    assert await BackupStore(backup_path).load() == []


@pytest.mark.asyncio
async def test_exhausted_retries_go_to_backup(scripted_sender, backup_path, make_record):
    sender = scripted_sender(default_error=TimeoutError("always"))
    engine = _engine(sender, backup_path, retry_limit=3)
    engine.push([make_record("r1")])

    delivered = await engine.run_cycle()

    assert delivered == 0
    assert len(sender.calls) == 3
    assert [r.message for r in await BackupStore(backup_path).load()] == ["r1"]
    # never re-added to the retry queue
    assert engine.pending == 0


@pytest.mark.asyncio
async def test_permanent_failure_stops_retrying(scripted_sender, backup_path, make_record):
    sender = scripted_sender([UnauthorizedError("bad key", 401)])
    engine = _engine(sender, backup_path, retry_limit=5)
    engine.push([make_record("r1")])

    await engine.run_cycle()

    assert len(sender.calls) == 1
    assert [r.message for r in await BackupStore(backup_path).load()] == ["r1"]


@pytest.mark.asyncio
async def test_rechunks_by_batch_size_and_chunks_are_independent(
    scripted_sender, backup_path, make_record
):
    """Five records, batch size 2 -> chunks [a,b] [c,d] [e]; middle chunk fails for good."""
    sender = scripted_sender(
        [
            None,  # chunk 1 attempt 1
            TimeoutError("x"),  # chunk 2 attempt 1
            TimeoutError("x"),  # chunk 2 attempt 2
            None,  # chunk 3 attempt 1
        ]
    )
    engine = _engine(sender, backup_path, batch_size=2, retry_limit=2)
    engine.push([make_record(m) for m in "abcde"])

    delivered = await engine.run_cycle()

    assert delivered == 3
    assert [[r.message for r in c] for c in sender.calls] == [
        ["a", "b"],
        ["c", "d"],
        ["c", "d"],
        ["e"],
    ]
    assert [r.message for r in await BackupStore(backup_path).load()] == ["c", "d"]


@pytest.mark.asyncio
async def test_backoff_sleeps_double(scripted_sender, backup_path, make_record, monkeypatch):
    delays = []
    real_sleep = asyncio.sleep

    async def fake_sleep(delay, *args, **kwargs):
        delays.append(delay)
        await real_sleep(0)

    monkeypatch.setattr("logship.transport.retry.asyncio.sleep", fake_sleep)

    sender = scripted_sender(default_error=TimeoutError("always"))
    engine = RetryEngine(
        sender,
        BackupStore(backup_path),
        EventBus(),
        batch_size=10,
        policy=RetryPolicy(retry_limit=3, backoff_factor_ms=1000),
    )
    engine.push([make_record()])
    await engine.run_cycle()

    assert delays[:3] == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_empty_queue_is_noop(scripted_sender, backup_path):
    sender = scripted_sender()
    engine = _engine(sender, backup_path)
    assert await engine.run_cycle() == 0
    assert sender.calls == []


@pytest.mark.asyncio
async def test_backup_io_error_publishes_event_and_keeps_records(
    scripted_sender, tmp_path, make_record
):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    events = EventBus()
    seen = []

    async def on_event(event):
        seen.append(event)

    events.subscribe(on_event)
    sender = scripted_sender(default_error=UnauthorizedError("nope", 401))
    engine = _engine(sender, blocker / "unsent.json", events=events)
    engine.push([make_record("r1")])

    await engine.run_cycle()

    assert [e.kind for e in seen] == [TransportEventKind.BACKUP_IO_ERROR]
    assert seen[0].record_count == 1
    assert seen[0].reason == "unauthorized"
    # kept in memory for the next cycle instead of being lost
    assert engine.pending == 1


@pytest.mark.asyncio
async def test_backup_success_publishes_event(scripted_sender, backup_path, make_record):
    events = EventBus()
    seen = []

    async def on_event(event):
        seen.append(event)

    events.subscribe(on_event)
    sender = scripted_sender(default_error=TimeoutError("x"))
    engine = _engine(sender, backup_path, retry_limit=1, events=events)
    engine.push([make_record()])
    await engine.run_cycle()

    assert [e.kind for e in seen] == [TransportEventKind.RECORDS_BACKED_UP]
    assert seen[0].reason == "transient"
