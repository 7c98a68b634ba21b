"""
Adapters between host logging frameworks and BatchTransport.

Both adapters hand the transport a plain level/message/timestamp mapping;
extra fields on the host record never reach the engine.

    # stdlib logging
    logging.getLogger().addHandler(BatchLogHandler(transport))

    # loguru
    handler_id = install_loguru_sink(transport, level="INFO")
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Union

from loguru import logger

from .transport import BatchTransport


# loggers whose records are produced by shipping itself
_EXCLUDED_LOGGERS = ("logship", "httpx", "httpcore")


def _is_excluded(name: str) -> bool:
    return any(name == prefix or name.startswith(prefix + ".") for prefix in _EXCLUDED_LOGGERS)


class _ExcludeTransportRecords(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return not _is_excluded(record.name)


class BatchLogHandler(logging.Handler):
    """stdlib logging handler that enqueues formatted records.

    Records from logship itself and from the HTTP client are filtered out;
    shipping them would trigger another send for every send.
    """

    def __init__(self, transport: BatchTransport, level: Union[int, str] = logging.NOTSET):
        super().__init__(level)
        self.transport = transport
        self.addFilter(_ExcludeTransportRecords())

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.transport.enqueue(
                {
                    "level": record.levelname,
                    "message": self.format(record),
                    "timestamp": record.created,
                }
            )
        except Exception:
            self.handleError(record)


class LoguruSink:
    """Callable loguru sink forwarding each message to the transport."""

    def __init__(self, transport: BatchTransport):
        self.transport = transport

    def __call__(self, message: Any) -> None:
        record = message.record
        self.transport.enqueue(
            {
                "level": record["level"].name,
                "message": record["message"],
                "timestamp": record["time"],
            }
        )


def _exclude_own_records(record: Dict[str, Any]) -> bool:
    # the engine logs through loguru too; shipping those would feed back
    return not _is_excluded(record.get("name") or "")


def install_loguru_sink(transport: BatchTransport, level: Union[int, str] = "INFO") -> int:
    """Register a LoguruSink on the global logger. Returns the handler id."""
    return logger.add(
        LoguruSink(transport),
        level=level,
        format="{message}",
        filter=_exclude_own_records,
    )
