from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .errors import DeliveryError
from .types import FailureKind


def classify_failure(exc: BaseException) -> FailureKind:
    """Map a send failure to a FailureKind.

    Classified delivery errors keep their kind; anything else a sender raises
    (timeouts, connection resets, unexpected errors) counts as transient.
    """
    if isinstance(exc, DeliveryError):
        return exc.kind
    return FailureKind.TRANSIENT


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: backoff_factor_ms * 2**attempt before each attempt."""

    retry_limit: int = 3
    backoff_factor_ms: float = 1000

    def __post_init__(self) -> None:
        if self.retry_limit < 0:
            raise ValueError("retry_limit must be >= 0")
        if self.backoff_factor_ms < 0:
            raise ValueError("backoff_factor_ms must be >= 0")

    def backoff_ms(self, attempt: int) -> float:
        return self.backoff_factor_ms * (2**attempt)

    def backoff_seconds(self, attempt: int) -> float:
        return self.backoff_ms(attempt) / 1000.0

    def attempts(self) -> Iterator[int]:
        return iter(range(self.retry_limit))
