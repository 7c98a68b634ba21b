from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Sequence

from pydantic import BaseModel, ConfigDict

# Loosely-typed entry waiting in the ingestion queue: exactly the keys
# "level", "message" and "timestamp", values not yet validated.
PendingRecord = Dict[str, Any]


class LogRecord(BaseModel):
    """Sanitized log record, the unit of delivery and backup."""

    model_config = ConfigDict(frozen=True, strict=True)

    level: str
    message: str
    timestamp: str


class FailureKind(str, Enum):
    """Classification of a failed delivery attempt."""

    TRANSIENT = "transient"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    PERMANENT = "permanent"

    @property
    def is_permanent(self) -> bool:
        return self is not FailureKind.TRANSIENT


class BatchSender(ABC):
    """Delivers one batch per call; raises on failure."""

    @abstractmethod
    async def send(self, batch: Sequence[LogRecord]) -> None: ...

    async def start(self) -> None:
        return None

    async def aclose(self) -> None:
        return None

    async def __aenter__(self) -> "BatchSender":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


@dataclass(frozen=True)
class TransportHealth:
    transport_id: str
    initialized: bool
    closed: bool
    pending: int
    retry_pending: int
    in_flight: int
