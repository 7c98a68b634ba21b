"""
logship: batching log transport.

Accepts log records synchronously and ships them to an HTTP collector in
batches, with retries, exponential backoff and a local backup file for
records that cannot be delivered.

Usage:
    from logship import BatchTransport

    async with BatchTransport(api_url="http://collector/logs",
                              batch_size=100, flush_interval_ms=2000) as transport:
        transport.enqueue({"level": "info", "message": "hello"})
"""

from .config import TransportSettings, get_settings
from .transport import (
    BackupStore,
    BatchSender,
    BatchTransport,
    FailureKind,
    HttpBatchSender,
    LogRecord,
    TransportEvent,
    TransportEventKind,
)
from .adapters import BatchLogHandler, LoguruSink, install_loguru_sink

__version__ = "1.0.0"
__all__ = [
    "BatchTransport",
    "BatchSender",
    "HttpBatchSender",
    "BackupStore",
    "LogRecord",
    "FailureKind",
    "TransportEvent",
    "TransportEventKind",
    "TransportSettings",
    "get_settings",
    "BatchLogHandler",
    "LoguruSink",
    "install_loguru_sink",
]
