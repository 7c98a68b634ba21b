"""Batch transport engine

Core enqueue→batch→send pipeline with:
- Record extraction, validation and sanitization
- FlushScheduler with size/time triggers and a concurrency cap
- HttpBatchSender with status classification and optional gzip
- RetryEngine with exponential backoff
- BackupStore (file-based JSON array, single writer)
- BatchTransport lifecycle (init/close) and per-transport EventBus
"""

from .types import BatchSender, FailureKind, LogRecord, PendingRecord, TransportHealth
from .errors import (
    BackupIOError,
    DeliveryError,
    ForbiddenError,
    PermanentDeliveryError,
    TransientDeliveryError,
    TransportError,
    UnauthorizedError,
    map_http_status,
)
from .validation import (
    MAX_LEVEL_LENGTH,
    MAX_MESSAGE_LENGTH,
    extract_record,
    prepare_batch,
    sanitize,
    validate,
)
from .policy import RetryPolicy, classify_failure
from .backup import BackupStore
from .sender import HttpBatchSender, build_payload
from .events import EventBus, TransportEvent, TransportEventKind
from .retry import RetryEngine
from .flush import FlushScheduler
from .batch_transport import BatchTransport

__all__ = [
    # types
    "BatchSender",
    "FailureKind",
    "LogRecord",
    "PendingRecord",
    "TransportHealth",
    # errors
    "TransportError",
    "DeliveryError",
    "TransientDeliveryError",
    "UnauthorizedError",
    "ForbiddenError",
    "PermanentDeliveryError",
    "BackupIOError",
    "map_http_status",
    # records
    "MAX_LEVEL_LENGTH",
    "MAX_MESSAGE_LENGTH",
    "extract_record",
    "validate",
    "sanitize",
    "prepare_batch",
    # policies
    "RetryPolicy",
    "classify_failure",
    # runtime
    "BackupStore",
    "HttpBatchSender",
    "build_payload",
    "RetryEngine",
    "FlushScheduler",
    "BatchTransport",
    # events
    "EventBus",
    "TransportEvent",
    "TransportEventKind",
]
