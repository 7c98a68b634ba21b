"""
Unit tests for the file-backed BackupStore.
"""

import asyncio
import json

import pytest

from logship.transport import BackupIOError, BackupStore


@pytest.mark.asyncio
async def test_append_and_reload_round_trip(backup_path, make_record):
    """Records written to backup reload with identical field values."""
    store = BackupStore(backup_path)
    records = [make_record(f"m{i}", level="error") for i in range(5)]

    await store.append_many(records[:3])
    for r in records[3:]:
        await store.append(r)

    loaded = await store.load()
    assert loaded == records

    # File is a plain JSON array of records
    on_disk = json.loads(backup_path.read_text())
    assert on_disk[0] == {
        "level": "error",
        "message": "m0",
        "timestamp": "2024-05-01T12:00:00.000Z",
    }


@pytest.mark.asyncio
async def test_load_missing_file_is_empty(tmp_path):
    store = BackupStore(tmp_path / "nope" / "missing.json", mkdirs=False)
    assert await store.load() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   \n", "{not json", '{"level": "info"}', "42"])
async def test_load_invalid_content_is_empty(backup_path, content):
    backup_path.write_text(content)
    assert await BackupStore(backup_path).load() == []


@pytest.mark.asyncio
async def test_load_skips_malformed_entries(backup_path):
    backup_path.write_text(
        json.dumps(
            [
                {"level": "info", "message": "ok", "timestamp": "2024-05-01T12:00:00.000Z"},
                {"level": 5, "message": "bad level"},
                "garbage",
            ]
        )
    )
    loaded = await BackupStore(backup_path).load()
    assert [r.message for r in loaded] == ["ok"]


@pytest.mark.asyncio
async def test_take_all_truncates(backup_path, make_record):
    store = BackupStore(backup_path)
    await store.append_many([make_record("a"), make_record("b")])

    taken = await store.take_all()
    assert [r.message for r in taken] == ["a", "b"]
    assert json.loads(backup_path.read_text()) == []
    assert await store.load() == []


@pytest.mark.asyncio
async def test_take_all_without_file_does_not_create_it(backup_path):
    store = BackupStore(backup_path)
    assert await store.take_all() == []
    assert not backup_path.exists()


@pytest.mark.asyncio
async def test_concurrent_writes_never_interleave(backup_path, make_record):
    """Serialized read-modify-write keeps every record from concurrent writers."""
    store = BackupStore(backup_path)

    await asyncio.gather(*[store.append(make_record(f"m{i}")) for i in range(25)])

    loaded = await store.load()
    assert sorted(r.message for r in loaded) == sorted(f"m{i}" for i in range(25))
    # file always parses as one JSON array
    assert isinstance(json.loads(backup_path.read_text()), list)


@pytest.mark.asyncio
async def test_write_failure_raises_backup_io_error(tmp_path, make_record):
    # parent "directory" is a regular file, so the write cannot succeed
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    store = BackupStore(blocker / "unsent.json")

    with pytest.raises(BackupIOError):
        await store.append(make_record())


@pytest.mark.asyncio
async def test_creates_parent_directories(tmp_path, make_record):
    path = tmp_path / "a" / "b" / "unsent.json"
    store = BackupStore(path)
    await store.append(make_record())
    assert path.exists()
