"""
Exceptions for the batch transport.

Delivery errors carry a FailureKind so the flush and retry paths can decide
between retrying and backing up without inspecting messages.
"""

from __future__ import annotations

from typing import Optional

from .types import FailureKind


class TransportError(Exception):
    """Base error for the batch transport."""

    pass


class DeliveryError(TransportError):
    """A batch could not be delivered to the collector."""

    kind: FailureKind = FailureKind.TRANSIENT

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientDeliveryError(DeliveryError):
    """Timeouts, connection errors, 5xx. Retried with backoff."""

    kind = FailureKind.TRANSIENT


class UnauthorizedError(DeliveryError):
    """HTTP 401: invalid or missing API key."""

    kind = FailureKind.UNAUTHORIZED


class ForbiddenError(DeliveryError):
    """HTTP 403: insufficient permissions for the API key."""

    kind = FailureKind.FORBIDDEN


class PermanentDeliveryError(DeliveryError):
    """HTTP 400/404: the collector rejected the request."""

    kind = FailureKind.PERMANENT


class BackupIOError(TransportError):
    """Filesystem failure while persisting records to the backup file."""

    pass


def map_http_status(status_code: int, detail: str = "") -> DeliveryError:
    if status_code == 401:
        return UnauthorizedError(
            f"Unauthorized: invalid or missing API key ({detail})", status_code
        )
    if status_code == 403:
        return ForbiddenError(
            f"Forbidden: insufficient permissions with provided API key ({detail})", status_code
        )
    if status_code in (400, 404):
        return PermanentDeliveryError(f"Permanent error: {status_code} - {detail}", status_code)
    return TransientDeliveryError(f"Collector returned {status_code} - {detail}", status_code)
