"""
Record extraction, validation and sanitization.

Raw records from a host logging framework are reduced to three plain fields
at enqueue time. Validation and sanitization happen at flush time; records
that fail validation are dropped there and never retried or backed up.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple

from ..utils import format_timestamp, parse_datetime, utc_now
from .types import LogRecord, PendingRecord

MAX_LEVEL_LENGTH = 32
MAX_MESSAGE_LENGTH = 32768

_LEVEL_KEYS = ("level", "levelname")
_MESSAGE_KEYS = ("message", "msg")
_TIMESTAMP_KEYS = ("timestamp", "time", "created")

_PLAIN = (str, int, float, bool)


def _lookup(raw: Any, keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if isinstance(raw, Mapping):
            value = raw.get(key)
        else:
            value = getattr(raw, key, None)
        if value is not None:
            return value
    return None


def _plain_level(value: Any) -> Any:
    # loguru Level records and Enum members carry the level under .name
    if not isinstance(value, _PLAIN) and isinstance(getattr(value, "name", None), str):
        return value.name
    return value if isinstance(value, _PLAIN) else None


def _plain_timestamp(value: Any, now: Optional[datetime]) -> Any:
    if value is None:
        return format_timestamp(now or utc_now())
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return format_timestamp(datetime.fromtimestamp(value, tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            return None
    return value if isinstance(value, str) else None


def extract_record(raw: Any, *, now: Optional[datetime] = None) -> PendingRecord:
    """Reduce a raw record (mapping or object) to level/message/timestamp.

    Everything else is dropped, so metadata with cyclic references never
    reaches the queue. Non-plain values become None and fail validation.
    """
    message = _lookup(raw, _MESSAGE_KEYS)
    return {
        "level": _plain_level(_lookup(raw, _LEVEL_KEYS)),
        "message": message if isinstance(message, _PLAIN) else None,
        "timestamp": _plain_timestamp(_lookup(raw, _TIMESTAMP_KEYS), now),
    }


def validate(record: Mapping) -> bool:
    """True iff level and message are strings and timestamp is a valid instant."""
    if not isinstance(record.get("level"), str) or not isinstance(record.get("message"), str):
        return False

    ts = record.get("timestamp")
    if not isinstance(ts, (str, datetime)):
        return False
    try:
        # sanitize() must be able to normalize whatever passes here
        format_timestamp(parse_datetime(ts))
    except (ValueError, TypeError, OverflowError):
        return False
    return True


def sanitize(record: Mapping) -> LogRecord:
    """Bound level/message lengths and normalize the timestamp.

    Callers must check validate() first.
    """
    return LogRecord(
        level=record["level"][:MAX_LEVEL_LENGTH],
        message=record["message"][:MAX_MESSAGE_LENGTH],
        timestamp=format_timestamp(parse_datetime(record["timestamp"])),
    )


def prepare_batch(entries: Iterable[Mapping]) -> Tuple[List[LogRecord], int]:
    """Validate and sanitize entries in order. Returns (records, dropped)."""
    records: List[LogRecord] = []
    dropped = 0
    for entry in entries:
        if validate(entry):
            records.append(sanitize(entry))
        else:
            dropped += 1
    return records, dropped
