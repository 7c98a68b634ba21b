"""
Flush scheduler: drains the ingestion queue into batches.

A flush takes at most batch_size records from the head of the queue and
sends them, unless max_concurrent_batches sends are already in flight; in
that case records keep accumulating until a later trigger.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Deque, Iterable, List, Optional

from loguru import logger

from ..metrics.registry import (
    BATCHES_SENT_TOTAL,
    INFLIGHT_BATCHES,
    QUEUE_DEPTH,
    RECORDS_DROPPED_TOTAL,
    SEND_LATENCY_MS,
)
from .events import EventBus, TransportEvent, TransportEventKind
from .policy import classify_failure
from .retry import RetryEngine
from .types import BatchSender, LogRecord, PendingRecord
from .validation import prepare_batch


class FlushScheduler:
    def __init__(
        self,
        sender: BatchSender,
        retry_engine: RetryEngine,
        *,
        batch_size: int,
        max_concurrent_batches: int = 3,
        events: Optional[EventBus] = None,
        transport_id: str = "default",
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        if max_concurrent_batches <= 0:
            raise ValueError("max_concurrent_batches must be > 0")

        self._sender = sender
        self._retry = retry_engine
        self._batch_size = batch_size
        self._max_concurrent = max_concurrent_batches
        self._events = events
        self._id = transport_id

        self._queue: Deque[PendingRecord] = deque()
        self._in_flight = 0

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def enqueue(self, entry: PendingRecord) -> None:
        self._queue.append(entry)
        QUEUE_DEPTH.labels(self._id, "ingestion").set(len(self._queue))

    def requeue_front(self, entries: Iterable[PendingRecord]) -> None:
        """Put entries ahead of everything queued, keeping their order."""
        self._queue.extendleft(reversed(list(entries)))
        QUEUE_DEPTH.labels(self._id, "ingestion").set(len(self._queue))

    def should_flush(self) -> bool:
        return len(self._queue) >= self._batch_size

    async def flush(self) -> int:
        """Send one batch from the head of the queue. Returns records delivered."""
        if not self._queue or self._in_flight >= self._max_concurrent:
            return 0

        take = min(self._batch_size, len(self._queue))
        entries = [self._queue.popleft() for _ in range(take)]
        QUEUE_DEPTH.labels(self._id, "ingestion").set(len(self._queue))

        batch, dropped = prepare_batch(entries)
        if dropped:
            RECORDS_DROPPED_TOTAL.labels(self._id).inc(dropped)
            logger.debug(f"[{self._id}] dropped {dropped} invalid records")

        delivered = await self._send(batch) if batch else 0
        if dropped and self._events is not None:
            await self._events.publish(
                TransportEvent(
                    transport_id=self._id,
                    kind=TransportEventKind.RECORDS_DROPPED,
                    record_count=dropped,
                    reason="invalid",
                )
            )
        return delivered

    async def _send(self, batch: List[LogRecord]) -> int:
        # counted before the first await so the cap check in flush() holds
        self._in_flight += 1
        INFLIGHT_BATCHES.labels(self._id).set(self._in_flight)
        t0 = time.perf_counter()
        try:
            await self._sender.send(batch)
        except Exception as exc:
            self._observe_latency(t0)
            kind = classify_failure(exc)
            BATCHES_SENT_TOTAL.labels(self._id, "flush", kind.value).inc()
            if kind.is_permanent:
                logger.warning(
                    f"[{self._id}] permanent failure ({kind.value}), "
                    f"backing up {len(batch)} records: {exc}"
                )
                await self._retry.backup(batch, kind)
            else:
                logger.debug(
                    f"[{self._id}] send failed ({type(exc).__name__}: {exc}), "
                    f"queued {len(batch)} records for retry"
                )
                self._retry.push(batch)
            return 0
        else:
            self._observe_latency(t0)
        finally:
            self._in_flight -= 1
            INFLIGHT_BATCHES.labels(self._id).set(self._in_flight)

        BATCHES_SENT_TOTAL.labels(self._id, "flush", "success").inc()
        logger.debug(f"[{self._id}] delivered batch of {len(batch)} records")
        return len(batch)

    def _observe_latency(self, t0: float) -> None:
        SEND_LATENCY_MS.labels(self._id, "flush").observe((time.perf_counter() - t0) * 1000.0)
