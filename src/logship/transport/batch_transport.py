"""
BatchTransport: lifecycle and orchestration of the batching engine.

    enqueue -> ingestion queue -> [size or time trigger] -> sender
            -> transient failure -> retry queue -> retry engine (backoff)
            -> permanent failure / retries exhausted -> backup file
            -> next init() -> ingestion queue

enqueue() is synchronous and never blocks. Flushing and retrying run as
tasks on the event loop that called init(); close() stops the timers,
waits for in-flight work, and forces a final flush and retry pass so no
record is left only in memory.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, List, Optional, Set

from loguru import logger

from ..config import TransportSettings, get_settings
from ..metrics.registry import RECORDS_DROPPED_TOTAL, RECORDS_ENQUEUED_TOTAL
from .backup import DEFAULT_BACKUP_PATH, BackupStore
from .errors import BackupIOError
from .events import EventBus, TransportEvent, TransportEventKind
from .flush import FlushScheduler
from .policy import RetryPolicy
from .retry import RetryEngine
from .sender import HttpBatchSender
from .types import BatchSender, PendingRecord, TransportHealth
from .validation import extract_record


class BatchTransport:
    """Batching log transport with retry, backoff and file backup.

    Usage:

        transport = BatchTransport(api_url="https://logs.example.com/ingest",
                                   batch_size=100, flush_interval_ms=2000)
        await transport.init()
        transport.enqueue({"level": "info", "message": "hello"})
        ...
        await transport.close()

    or as an async context manager (init on enter, close on exit).
    """

    def __init__(
        self,
        *,
        batch_size: int,
        flush_interval_ms: float,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        retry_limit: int = 3,
        backoff_factor_ms: float = 1000,
        backup_file_path: str = DEFAULT_BACKUP_PATH,
        request_timeout_ms: float = 5000,
        max_concurrent_batches: int = 3,
        use_compression: bool = False,
        retry_interval_ms: float = 10000,
        sender: Optional[BatchSender] = None,
        transport_id: str = "default",
        drain_poll_ms: float = 50,
        drain_timeout_ms: Optional[float] = None,
    ):
        if flush_interval_ms <= 0:
            raise ValueError("flush_interval_ms must be > 0")
        if retry_interval_ms <= 0:
            raise ValueError("retry_interval_ms must be > 0")
        if sender is None:
            if not api_url:
                raise ValueError("api_url required when no sender is given")
            sender = HttpBatchSender(
                api_url,
                api_key=api_key,
                request_timeout=request_timeout_ms / 1000.0,
                use_compression=use_compression,
            )

        self.transport_id = transport_id
        self.events = EventBus()
        self.backup_store = BackupStore(backup_file_path)

        self._sender = sender
        self._retry = RetryEngine(
            sender,
            self.backup_store,
            self.events,
            batch_size=batch_size,
            policy=RetryPolicy(retry_limit=retry_limit, backoff_factor_ms=backoff_factor_ms),
            transport_id=transport_id,
        )
        self._flush = FlushScheduler(
            sender,
            self._retry,
            batch_size=batch_size,
            max_concurrent_batches=max_concurrent_batches,
            events=self.events,
            transport_id=transport_id,
        )

        self._flush_interval = flush_interval_ms / 1000.0
        self._retry_interval = retry_interval_ms / 1000.0
        self._drain_poll = drain_poll_ms / 1000.0
        self._drain_timeout = drain_timeout_ms / 1000.0 if drain_timeout_ms is not None else None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._initialized = False
        self._closed = False
        self._stopped = False
        self._warned_stopped = False
        self._timers: List[asyncio.Task] = []
        self._cycles: Set[asyncio.Task] = set()
        self._init_lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls, settings: Optional[TransportSettings] = None, **overrides: Any
    ) -> "BatchTransport":
        params = (settings or get_settings()).model_dump()
        params.update(overrides)
        return cls(**params)

    # --------------- context management

    async def __aenter__(self) -> "BatchTransport":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --------------- state

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def pending(self) -> int:
        return self._flush.pending

    @property
    def retry_pending(self) -> int:
        return self._retry.pending

    @property
    def in_flight(self) -> int:
        return self._flush.in_flight

    def health(self) -> TransportHealth:
        return TransportHealth(
            transport_id=self.transport_id,
            initialized=self._initialized,
            closed=self._closed,
            pending=self._flush.pending,
            retry_pending=self._retry.pending,
            in_flight=self._flush.in_flight,
        )

    # --------------- ingestion

    def enqueue(self, raw: Any, on_accepted: Optional[Callable[[], None]] = None) -> None:
        """Accept one raw record without blocking.

        on_accepted is invoked once the record is queued, not after delivery.
        A closed transport drops the record (counted and logged) and still
        invokes on_accepted; init() again to resume shipping.
        Calls from threads other than the engine's loop are handed over with
        call_soon_threadsafe.
        """
        try:
            entry = extract_record(raw)
        except Exception as exc:
            # unreadable input still flows to the flush-time invalid-record drop
            logger.debug(f"[{self.transport_id}] could not extract record: {exc}")
            entry = {"level": None, "message": None, "timestamp": None}

        loop = self._loop
        if loop is not None and loop.is_running() and not self._on_loop(loop):
            loop.call_soon_threadsafe(self._accept, entry)
        else:
            self._accept(entry)

        if on_accepted is not None:
            on_accepted()

    @staticmethod
    def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
        try:
            return asyncio.get_running_loop() is loop
        except RuntimeError:
            return False

    def _accept(self, entry: PendingRecord) -> None:
        if self._stopped:
            RECORDS_DROPPED_TOTAL.labels(self.transport_id).inc()
            if not self._warned_stopped:
                self._warned_stopped = True
                logger.warning(
                    f"[{self.transport_id}] transport is closed, dropping records "
                    f"until init() is called again"
                )
            return
        self._flush.enqueue(entry)
        RECORDS_ENQUEUED_TOTAL.labels(self.transport_id).inc()
        # size trigger only arms after init() so recovered records go first
        if self._armed and self._flush.should_flush():
            self._spawn(self._run_flush(), "flush")

    @property
    def _armed(self) -> bool:
        return (
            self._initialized
            and not self._closed
            and self._loop is not None
            and self._loop.is_running()
        )

    # --------------- lifecycle

    async def init(self) -> None:
        """Recover backed-up records, then start the flush and retry timers.

        Idempotent while running; calling it again after close() restarts
        the transport.
        """
        async with self._init_lock:
            if self._initialized and not self._closed:
                return

            self._loop = asyncio.get_running_loop()
            await self._recover_backup()
            await self._sender.start()

            self._initialized = True
            self._closed = False
            self._stopped = False
            self._timers = [
                asyncio.create_task(
                    self._periodic(self._flush_interval, self._run_flush, "flush"),
                    name=f"logship-{self.transport_id}-flush-timer",
                ),
                asyncio.create_task(
                    self._periodic(self._retry_interval, self._retry.run_cycle, "retry"),
                    name=f"logship-{self.transport_id}-retry-timer",
                ),
            ]
            logger.info(
                f"[{self.transport_id}] transport started "
                f"(flush every {self._flush_interval}s, retry every {self._retry_interval}s)"
            )

            if self._flush.should_flush():
                self._spawn(self._run_flush(), "flush")

    async def _recover_backup(self) -> None:
        try:
            recovered = await self.backup_store.take_all()
        except BackupIOError as exc:
            # records stay in the file and are picked up on the next start
            logger.error(f"[{self.transport_id}] backup recovery failed: {exc}")
            await self.events.publish(
                TransportEvent(
                    transport_id=self.transport_id,
                    kind=TransportEventKind.BACKUP_IO_ERROR,
                    record_count=0,
                    error=str(exc),
                    reason="recovery",
                )
            )
            return

        if recovered:
            self._flush.requeue_front(r.model_dump() for r in recovered)
            logger.info(
                f"[{self.transport_id}] recovered {len(recovered)} records "
                f"from {self.backup_store.path}"
            )

    async def close(self) -> None:
        """Stop timers, wait for in-flight sends, then drain everything.

        Safe to call more than once.
        """
        self._closed = True

        for timer in self._timers:
            timer.cancel()
        if self._timers:
            await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers = []

        while self._cycles:
            await asyncio.gather(*list(self._cycles), return_exceptions=True)

        await self._wait_idle()

        flushed = await self._drain_ingestion()
        # nothing flushes from here on; later records are rejected in _accept
        self._stopped = True
        self._warned_stopped = False
        retried = await self._retry.run_cycle()
        await self._sender.aclose()

        logger.info(
            f"[{self.transport_id}] transport closed "
            f"(final flush delivered {flushed}, final retry delivered {retried}, "
            f"{self._retry.pending} left in memory)"
        )

    async def _wait_idle(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = None if self._drain_timeout is None else loop.time() + self._drain_timeout
        while self._flush.in_flight > 0:
            if deadline is not None and loop.time() >= deadline:
                logger.warning(
                    f"[{self.transport_id}] {self._flush.in_flight} batches still in flight "
                    f"after {self._drain_timeout}s, draining anyway"
                )
                return
            await asyncio.sleep(self._drain_poll)

    async def _drain_ingestion(self) -> int:
        delivered = 0
        while self._flush.pending:
            before = self._flush.pending
            delivered += await self._flush.flush()
            if self._flush.pending >= before:
                break
        return delivered

    # --------------- manual triggers

    async def flush(self) -> int:
        """Send one batch now (subject to the concurrency cap)."""
        return await self._flush.flush()

    async def retry(self) -> int:
        """Run one retry cycle now."""
        return await self._retry.run_cycle()

    # --------------- scheduling internals

    async def _run_flush(self) -> int:
        delivered = await self._flush.flush()
        if delivered and self._armed and self._flush.should_flush():
            self._spawn(self._run_flush(), "flush")
        return delivered

    async def _periodic(
        self, interval: float, cycle: Callable[[], Coroutine[Any, Any, int]], name: str
    ) -> None:
        # interval-timer semantics: ticks do not wait for earlier cycles
        while True:
            await asyncio.sleep(interval)
            self._spawn(cycle(), name)

    def _spawn(self, coro: Coroutine[Any, Any, int], name: str) -> None:
        task = asyncio.get_running_loop().create_task(
            coro, name=f"logship-{self.transport_id}-{name}"
        )
        self._cycles.add(task)
        task.add_done_callback(self._on_cycle_done)

    def _on_cycle_done(self, task: asyncio.Task) -> None:
        self._cycles.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(
                f"[{self.transport_id}] {task.get_name()} failed: {type(exc).__name__}: {exc}"
            )
