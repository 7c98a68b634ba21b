"""
Pytest configuration and fixtures for logship.

Provides cross-platform event loop configuration and shared test doubles.
"""

import asyncio
import sys
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import pytest

from logship.config import get_settings
from logship.transport import BatchSender, LogRecord

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


class ScriptedSender(BatchSender):
    """Sender whose outcomes are scripted per call.

    Each entry in `outcomes` is consumed by one send(): an exception instance
    is raised, None means success. Once the script runs out every call
    succeeds (or fails with `default_error`, if given).
    """

    def __init__(
        self,
        outcomes: Optional[list] = None,
        *,
        delay: float = 0.0,
        default_error: Optional[Exception] = None,
    ):
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.default_error = default_error
        self.calls: List[List[LogRecord]] = []
        self.delivered: List[List[LogRecord]] = []
        self.started = 0
        self.closed = 0

    async def start(self) -> None:
        self.started += 1

    async def aclose(self) -> None:
        self.closed += 1

    async def send(self, batch: Sequence[LogRecord]) -> None:
        self.calls.append(list(batch))
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default_error
        if outcome is not None:
            raise outcome
        self.delivered.append(list(batch))

    @property
    def delivered_messages(self) -> List[str]:
        return [r.message for batch in self.delivered for r in batch]


@pytest.fixture
def scripted_sender():
    """Factory for ScriptedSender instances."""
    return ScriptedSender


@pytest.fixture
def make_record():
    """Build a sanitized LogRecord with sensible defaults."""

    def _make(message: str = "hello", level: str = "info", ts: Optional[str] = None) -> LogRecord:
        return LogRecord(
            level=level,
            message=message,
            timestamp=ts or "2024-05-01T12:00:00.000Z",
        )

    return _make


@pytest.fixture
def raw_entry():
    """Build a raw enqueue-style mapping."""

    def _make(message: str = "hello", level: str = "info") -> dict:
        return {
            "level": level,
            "message": message,
            "timestamp": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc).isoformat(),
        }

    return _make


@pytest.fixture
def backup_path(tmp_path):
    return tmp_path / "unsent-logs.json"


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
