from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Dict, Optional

import typer
from loguru import logger
from pydantic import ValidationError

from .config import TransportSettings
from .transport import BackupStore, BatchTransport
from .utils import iter_ndjson

app = typer.Typer(help="logship operational CLI (ship NDJSON logs, inspect/replay backups)")

# ---------------------------
# Common options
# ---------------------------


def api_url_opt() -> Optional[str]:
    return typer.Option(None, "--api-url", help="Collector endpoint (or LOGSHIP_API_URL)")


def api_key_opt() -> Optional[str]:
    return typer.Option(None, "--api-key", help="Bearer API key (or LOGSHIP_API_KEY)")


def batch_size_opt() -> Optional[int]:
    return typer.Option(None, "--batch-size", help="Records per batch (or LOGSHIP_BATCH_SIZE)")


def flush_interval_opt() -> Optional[int]:
    return typer.Option(
        None, "--flush-interval-ms", help="Flush timer period (or LOGSHIP_FLUSH_INTERVAL_MS)"
    )


def backup_file_opt() -> Optional[str]:
    return typer.Option(
        None, "--backup-file", help="Backup file path (or LOGSHIP_BACKUP_FILE_PATH)"
    )


def compress_opt() -> Optional[bool]:
    return typer.Option(None, "--compress/--no-compress", help="gzip request bodies")


def build_settings(**overrides: Any) -> TransportSettings:
    """CLI values win; anything left unset comes from LOGSHIP_* env vars."""
    given: Dict[str, Any] = {k: v for k, v in overrides.items() if v is not None}
    try:
        return TransportSettings(**given)
    except ValidationError as e:
        logger.error(f"Invalid transport configuration: {e}")
        sys.exit(1)


# ---------------------------
# Shipping
# ---------------------------


@app.command("ship")
def ship(
    path: str = typer.Argument(..., help="NDJSON file path, .gz ok, or '-' for stdin"),
    api_url: Optional[str] = api_url_opt(),
    api_key: Optional[str] = api_key_opt(),
    batch_size: Optional[int] = batch_size_opt(),
    flush_interval_ms: Optional[int] = flush_interval_opt(),
    backup_file: Optional[str] = backup_file_opt(),
    compress: Optional[bool] = compress_opt(),
):
    """Ship every log entry in an NDJSON file, then drain and exit."""
    settings = build_settings(
        api_url=api_url,
        api_key=api_key,
        batch_size=batch_size,
        flush_interval_ms=flush_interval_ms,
        backup_file_path=backup_file,
        use_compression=compress,
    )
    summary = asyncio.run(_ship(settings, path))
    typer.echo(json.dumps(summary, indent=2))


async def _ship(settings: TransportSettings, path: str) -> Dict[str, Any]:
    transport = BatchTransport.from_settings(settings)
    n = 0
    async with transport:
        for obj in iter_ndjson(path):
            transport.enqueue(obj)
            n += 1
            if n % settings.batch_size == 0:
                await asyncio.sleep(0)  # let triggered flushes start
    backup = await transport.backup_store.load()
    return {
        "enqueued": n,
        "backup_file": str(transport.backup_store.path),
        "backup_total": len(backup),
        "left_in_memory": transport.retry_pending,
    }


# ---------------------------
# Backup file
# ---------------------------


@app.command("backup-show")
def backup_show(
    backup_file: str = typer.Option(
        "./unsent-logs.json", "--backup-file", envvar="LOGSHIP_BACKUP_FILE_PATH"
    ),
    records: bool = typer.Option(False, "--records", help="Print each record as a JSON line"),
):
    """Show how many records are waiting in the backup file."""
    found = asyncio.run(BackupStore(backup_file, mkdirs=False).load())
    typer.echo(json.dumps({"backup_file": backup_file, "count": len(found)}, indent=2))
    if records:
        for r in found:
            typer.echo(r.model_dump_json())


@app.command("replay-backup")
def replay_backup(
    api_url: Optional[str] = api_url_opt(),
    api_key: Optional[str] = api_key_opt(),
    batch_size: Optional[int] = batch_size_opt(),
    flush_interval_ms: Optional[int] = flush_interval_opt(),
    backup_file: Optional[str] = backup_file_opt(),
    compress: Optional[bool] = compress_opt(),
):
    """Load the backup file and try to deliver every record in it once more."""
    settings = build_settings(
        api_url=api_url,
        api_key=api_key,
        batch_size=batch_size,
        flush_interval_ms=flush_interval_ms,
        backup_file_path=backup_file,
        use_compression=compress,
    )
    summary = asyncio.run(_replay(settings))
    typer.echo(json.dumps(summary, indent=2))


async def _replay(settings: TransportSettings) -> Dict[str, Any]:
    transport = BatchTransport.from_settings(settings)
    await transport.init()
    recovered = transport.pending
    logger.info(f"Replaying {recovered} records from {transport.backup_store.path}")
    await transport.close()
    remaining = await transport.backup_store.load()
    return {
        "recovered": recovered,
        "backed_up_again": len(remaining),
        "left_in_memory": transport.retry_pending,
    }


if __name__ == "__main__":
    app()
