"""
Engine-level events for the batch transport.

Failures that must not be raised to the logging caller (backup I/O errors)
are published here instead. Each transport owns its own bus.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from loguru import logger


class TransportEventKind(str, Enum):
    BACKUP_IO_ERROR = "backup_io_error"
    RECORDS_BACKED_UP = "records_backed_up"
    RECORDS_DROPPED = "records_dropped"


@dataclass(frozen=True)
class TransportEvent:
    """Immutable transport event.

    Attributes:
        transport_id: Identifies the emitting transport
        kind: What happened
        record_count: Number of records affected
        error: Error text for failure events
        reason: Optional context (e.g. the FailureKind that caused a backup)
    """

    transport_id: str
    kind: TransportEventKind
    record_count: int
    error: str | None = None
    reason: str | None = None


class EventSubscriber(Protocol):
    async def __call__(self, event: TransportEvent) -> None: ...


class EventBus:
    """In-process pub/sub for transport events.

    One subscriber's failure does not affect others. Best-effort delivery.

    Example:
        async def on_event(event: TransportEvent):
            if event.kind == TransportEventKind.BACKUP_IO_ERROR:
                alert(event.error)

        transport.events.subscribe(on_event)
    """

    def __init__(self) -> None:
        self._subs: list[EventSubscriber] = []

    def subscribe(self, callback: EventSubscriber) -> None:
        if callback not in self._subs:
            self._subs.append(callback)
            logger.debug(f"Event subscriber added (total: {len(self._subs)})")

    def unsubscribe(self, callback: EventSubscriber) -> None:
        """Remove a subscriber. No-op if it was never added."""
        try:
            self._subs.remove(callback)
            logger.debug(f"Event subscriber removed (total: {len(self._subs)})")
        except ValueError:
            pass

    async def publish(self, event: TransportEvent) -> None:
        """Call every subscriber in registration order, isolating exceptions."""
        if not self._subs:
            return

        for callback in list(self._subs):
            try:
                await callback(event)
            except Exception as exc:
                logger.debug(f"Event subscriber error (ignored): {type(exc).__name__}: {exc}")

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)
