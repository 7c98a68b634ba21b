"""
Retry engine for batches whose first send failed transiently.

Each cycle drains the whole retry queue, re-chunks it by batch size and
works through the chunks one after another. A chunk either gets delivered
or ends up in the backup store within the cycle; delivery failures never
put it back on the retry queue.
"""

from __future__ import annotations

import asyncio
import time
from typing import Iterable, List, Sequence

from loguru import logger

from ..metrics.registry import (
    BACKUP_IO_ERRORS_TOTAL,
    BATCHES_SENT_TOTAL,
    QUEUE_DEPTH,
    RECORDS_BACKED_UP_TOTAL,
    SEND_LATENCY_MS,
)
from .backup import BackupStore
from .errors import BackupIOError
from .events import EventBus, TransportEvent, TransportEventKind
from .policy import RetryPolicy, classify_failure
from .types import BatchSender, FailureKind, LogRecord


class RetryEngine:
    def __init__(
        self,
        sender: BatchSender,
        backup: BackupStore,
        events: EventBus,
        *,
        batch_size: int,
        policy: RetryPolicy | None = None,
        transport_id: str = "default",
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self._sender = sender
        self._backup = backup
        self._events = events
        self._batch_size = batch_size
        self._policy = policy or RetryPolicy()
        self._id = transport_id
        self._queue: List[LogRecord] = []

    @property
    def pending(self) -> int:
        return len(self._queue)

    def push(self, records: Iterable[LogRecord]) -> None:
        self._queue.extend(records)
        QUEUE_DEPTH.labels(self._id, "retry").set(len(self._queue))

    async def run_cycle(self) -> int:
        """Process everything currently queued. Returns records delivered."""
        if not self._queue:
            return 0

        snapshot, self._queue = self._queue, []
        QUEUE_DEPTH.labels(self._id, "retry").set(0)
        logger.debug(f"[{self._id}] retry cycle: {len(snapshot)} records")

        delivered = 0
        for i in range(0, len(snapshot), self._batch_size):
            chunk = snapshot[i : i + self._batch_size]
            if await self._retry_chunk(chunk):
                delivered += len(chunk)
        return delivered

    async def _retry_chunk(self, chunk: Sequence[LogRecord]) -> bool:
        kind = FailureKind.TRANSIENT
        for attempt in self._policy.attempts():
            await asyncio.sleep(self._policy.backoff_seconds(attempt))
            t0 = time.perf_counter()
            try:
                await self._sender.send(chunk)
            except Exception as exc:
                kind = classify_failure(exc)
                BATCHES_SENT_TOTAL.labels(self._id, "retry", kind.value).inc()
                if kind.is_permanent:
                    logger.warning(
                        f"[{self._id}] retry hit permanent failure ({kind.value}), "
                        f"backing up {len(chunk)} records: {exc}"
                    )
                    break
                logger.debug(
                    f"[{self._id}] retry attempt {attempt + 1}/{self._policy.retry_limit} "
                    f"failed: {type(exc).__name__}: {exc}"
                )
                continue
            finally:
                SEND_LATENCY_MS.labels(self._id, "retry").observe(
                    (time.perf_counter() - t0) * 1000.0
                )

            BATCHES_SENT_TOTAL.labels(self._id, "retry", "success").inc()
            logger.debug(f"[{self._id}] retry delivered {len(chunk)} records")
            return True
        else:
            logger.warning(
                f"[{self._id}] retries exhausted after {self._policy.retry_limit} attempts, "
                f"backing up {len(chunk)} records"
            )

        await self.backup(chunk, kind)
        return False

    async def backup(self, records: Sequence[LogRecord], kind: FailureKind) -> None:
        """Persist records as a last resort.

        If the write fails the records go back on the retry queue and a
        backup_io_error event is published; nothing is raised.
        """
        if not records:
            return
        try:
            await self._backup.append_many(records)
        except BackupIOError as exc:
            BACKUP_IO_ERRORS_TOTAL.labels(self._id).inc()
            logger.error(f"[{self._id}] {exc}; keeping {len(records)} records in memory")
            self.push(records)
            await self._events.publish(
                TransportEvent(
                    transport_id=self._id,
                    kind=TransportEventKind.BACKUP_IO_ERROR,
                    record_count=len(records),
                    error=str(exc),
                    reason=kind.value,
                )
            )
            return

        RECORDS_BACKED_UP_TOTAL.labels(self._id, kind.value).inc(len(records))
        await self._events.publish(
            TransportEvent(
                transport_id=self._id,
                kind=TransportEventKind.RECORDS_BACKED_UP,
                record_count=len(records),
                reason=kind.value,
            )
        )
