"""
File-backed backup store for records that could not be delivered.

The file is a single JSON array of LogRecord objects. Every write is a
read-modify-write of the whole file, serialized by one asyncio.Lock per
store, and lands via a temporary sibling file plus os.replace so readers
never observe partial JSON.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Iterable, List

from loguru import logger
from pydantic import ValidationError

from .errors import BackupIOError
from .types import LogRecord

DEFAULT_BACKUP_PATH = "./unsent-logs.json"


class BackupStore:
    """Durable JSON-array store with a single-writer discipline."""

    def __init__(self, path: str | os.PathLike = DEFAULT_BACKUP_PATH, *, mkdirs: bool = True):
        self.path = Path(path)
        self._mkdirs = mkdirs
        self._lock = asyncio.Lock()

    # --------------- public API

    async def load(self) -> List[LogRecord]:
        """Read all backed-up records. Never raises; bad content reads as []."""
        async with self._lock:
            return await asyncio.to_thread(self._read)

    async def append(self, record: LogRecord) -> None:
        await self.append_many([record])

    async def append_many(self, records: Iterable[LogRecord]) -> None:
        """Append records to the file. Raises BackupIOError on OS failure."""
        records = list(records)
        if not records:
            return
        async with self._lock:
            existing = await asyncio.to_thread(self._read)
            existing.extend(records)
            await asyncio.to_thread(self._write, existing)

    async def truncate(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write, [])

    async def take_all(self) -> List[LogRecord]:
        """Load and truncate under one lock hold (startup recovery)."""
        async with self._lock:
            records = await asyncio.to_thread(self._read)
            if records:
                await asyncio.to_thread(self._write, [])
            return records

    # --------------- internals (run in worker threads)

    def _read(self) -> List[LogRecord]:
        try:
            data = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning(f"Backup file {self.path} unreadable, treating as empty: {exc}")
            return []

        if not data.strip():
            return []
        try:
            raw = json.loads(data)
        except json.JSONDecodeError as exc:
            logger.warning(f"Backup file {self.path} is not valid JSON, treating as empty: {exc}")
            return []
        if not isinstance(raw, list):
            logger.warning(f"Backup file {self.path} does not hold a JSON array, treating as empty")
            return []

        records: List[LogRecord] = []
        for item in raw:
            try:
                records.append(LogRecord.model_validate(item))
            except ValidationError:
                logger.warning(f"Skipping malformed backup entry: {item!r}")
        return records

    def _write(self, records: List[LogRecord]) -> None:
        payload = json.dumps([r.model_dump() for r in records], indent=2)
        tmp = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        try:
            if self._mkdirs:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload, encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            try:
                tmp.unlink(missing_ok=True)
            except OSError:
                pass
            raise BackupIOError(f"Failed to write backup file {self.path}: {exc}") from exc
