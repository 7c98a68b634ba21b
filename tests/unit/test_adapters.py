"""
Unit tests for the stdlib logging and loguru adapters.
"""

import asyncio
import json
import logging

import httpx
import pytest
from loguru import logger

from logship.adapters import (
    BatchLogHandler,
    LoguruSink,
    _exclude_own_records,
    install_loguru_sink,
)
from logship.transport import BatchTransport, HttpBatchSender


@pytest.fixture
def transport(scripted_sender, backup_path):
    sender = scripted_sender()
    t = BatchTransport(
        sender=sender,
        batch_size=100,
        flush_interval_ms=10_000,
        backup_file_path=str(backup_path),
    )
    t.test_sender = sender
    return t


@pytest.mark.asyncio
async def test_stdlib_handler_enqueues_formatted_records(transport):
    handler = BatchLogHandler(transport)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    log = logging.getLogger("logship-test-app")
    log.setLevel(logging.INFO)
    log.propagate = False
    log.addHandler(handler)
    try:
        log.info("user %s logged in", "ada", extra={"request": object()})
        log.debug("filtered by level")
    finally:
        log.removeHandler(handler)

    assert transport.pending == 1
    await transport.close()

    [rec] = transport.test_sender.delivered[0]
    assert rec.level == "INFO"
    assert rec.message == "logship-test-app: user ada logged in"
    assert rec.timestamp.endswith("Z")


@pytest.mark.asyncio
async def test_loguru_sink_enqueues_records(transport):
    handler_id = install_loguru_sink(transport, level="INFO")
    try:
        logger.info("payment {} settled", 42)
        logger.debug("below sink level")
    finally:
        logger.remove(handler_id)

    assert transport.pending == 1
    await transport.close()

    [rec] = transport.test_sender.delivered[0]
    assert rec.level == "INFO"
    assert rec.message == "payment 42 settled"


def test_loguru_sink_callable_uses_record_fields(transport):
    class FakeLevel:
        name = "WARNING"

    class FakeMessage(str):
        record = {
            "level": FakeLevel(),
            "message": "raw message",
            "time": None,
        }

    LoguruSink(transport)(FakeMessage("formatted"))
    assert transport.pending == 1


def test_own_records_are_excluded():
    assert not _exclude_own_records({"name": "logship.transport.flush"})
    assert _exclude_own_records({"name": "myapp.service"})
    assert _exclude_own_records({"name": None})


@pytest.mark.parametrize(
    "name, shipped",
    [
        ("httpx", False),
        ("httpcore.http11", False),
        ("logship.transport.flush", False),
        ("httpx_extras", True),
        ("myapp", True),
    ],
)
def test_stdlib_handler_skips_transport_loggers(transport, name, shipped):
    handler = BatchLogHandler(transport)
    record = logging.LogRecord(name, logging.INFO, __file__, 1, "msg", None, None)
    assert bool(handler.filter(record)) is shipped


@pytest.mark.asyncio
async def test_root_handler_does_not_ship_its_own_http_logs(backup_path):
    posts = []

    def collector(request: httpx.Request) -> httpx.Response:
        posts.append(json.loads(request.content))
        return httpx.Response(200)

    client = httpx.AsyncClient(transport=httpx.MockTransport(collector))
    transport = BatchTransport(
        sender=HttpBatchSender("http://collector.test/logs", client=client),
        batch_size=1,
        flush_interval_ms=10_000,
        backup_file_path=str(backup_path),
    )
    root = logging.getLogger()
    handler = BatchLogHandler(transport)
    previous_level = root.level
    root.setLevel(logging.INFO)
    root.addHandler(handler)
    try:
        async with transport:
            logging.getLogger("app").info("one app record")
            await asyncio.sleep(0.3)
    finally:
        root.removeHandler(handler)
        root.setLevel(previous_level)
        await client.aclose()

    assert [[r["message"] for r in post] for post in posts] == [["one app record"]]
