"""
Utility functions for logship.

Time helpers for canonical timestamps and NDJSON reading for the CLI.
"""

import gzip
import io
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Union


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(dt: Union[str, datetime]) -> datetime:
    """Parse datetime from ISO string or return datetime object.

    Naive values are taken as UTC. Raises ValueError for unparseable input.
    """
    if isinstance(dt, str):
        dt = datetime.fromisoformat(dt.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(dt: datetime) -> str:
    """Canonical ISO-8601 form: UTC, millisecond precision, 'Z' suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{dt.microsecond // 1000:03d}Z"


def iter_ndjson(path: str) -> Iterator[Dict[str, Any]]:
    """Yield JSON objects from an NDJSON file, a .gz file, or '-' for stdin.

    Blank lines are skipped.
    """
    if path == "-":
        stream: io.TextIOBase = sys.stdin
        close = False
    elif path.endswith(".gz"):
        stream = io.TextIOWrapper(gzip.open(path, "rb"), encoding="utf-8")
        close = True
    else:
        stream = open(path, "r", encoding="utf-8")
        close = True

    try:
        for line in stream:
            line = line.strip()
            if not line:
                continue
            yield json.loads(line)
    finally:
        if close:
            stream.close()
