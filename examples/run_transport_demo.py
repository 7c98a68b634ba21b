"""
Demo: ship loguru logs through BatchTransport to a flaky collector.

The collector is simulated in-process with httpx.MockTransport: it fails
every third request with a 503, so some batches go through the retry
engine before they are delivered.
"""

import asyncio
import json

import httpx
from loguru import logger

from logship import BatchTransport, HttpBatchSender, install_loguru_sink

received = []
requests_seen = 0


def collector(request: httpx.Request) -> httpx.Response:
    global requests_seen
    requests_seen += 1
    if requests_seen % 3 == 0:
        return httpx.Response(503)
    received.extend(json.loads(request.content))
    return httpx.Response(200, json={"status": "success"})


async def main():
    client = httpx.AsyncClient(transport=httpx.MockTransport(collector))
    sender = HttpBatchSender("http://collector.local/logs", client=client)

    async with BatchTransport(
        sender=sender,
        batch_size=20,
        flush_interval_ms=200,
        retry_interval_ms=500,
        backoff_factor_ms=50,
        backup_file_path="./demo-unsent-logs.json",
        transport_id="demo",
    ) as transport:
        handler_id = install_loguru_sink(transport, level="INFO")

        for i in range(200):
            logger.info(f"order {i} processed")
            if i % 20 == 0:
                await asyncio.sleep(0.05)

        logger.remove(handler_id)
        health = transport.health()
        logger.info(
            f"Before close: pending={health.pending} retry={health.retry_pending} "
            f"in_flight={health.in_flight}"
        )

    await client.aclose()
    logger.info(f"Collector received {len(received)} records in {requests_seen} requests")


if __name__ == "__main__":
    asyncio.run(main())
