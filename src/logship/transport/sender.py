"""
HTTP batch sender.

Posts one batch per call to the collector endpoint and turns every failure
into a classified DeliveryError:

    401          -> UnauthorizedError      (permanent)
    403          -> ForbiddenError         (permanent)
    400, 404     -> PermanentDeliveryError (permanent)
    anything else, timeouts, connection errors -> TransientDeliveryError
"""

from __future__ import annotations

import gzip
import json
from typing import Any, Dict, Optional, Sequence, Tuple

import httpx
from loguru import logger

from .errors import TransientDeliveryError, map_http_status
from .types import BatchSender, LogRecord


def build_payload(
    batch: Sequence[LogRecord], use_compression: bool
) -> Tuple[Dict[str, str], Dict[str, Any]]:
    """Return (headers, request kwargs) for a batch."""
    body = [r.model_dump() for r in batch]
    if not use_compression:
        return {"Content-Type": "application/json"}, {"json": body}

    compressed = gzip.compress(json.dumps(body).encode("utf-8"))
    headers = {"Content-Type": "application/octet-stream", "Content-Encoding": "gzip"}
    return headers, {"content": compressed}


class HttpBatchSender(BatchSender):
    """Delivers batches with httpx.AsyncClient.

    An injected client is used as-is and left open on aclose(); otherwise the
    sender creates and owns its client.
    """

    def __init__(
        self,
        api_url: str,
        *,
        api_key: Optional[str] = None,
        request_timeout: float = 5.0,
        use_compression: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.request_timeout = request_timeout
        self.use_compression = use_compression
        self._client = client
        self._owns_client = client is None

    async def start(self) -> None:
        self._ensure_client()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.request_timeout)
            self._owns_client = True
            logger.debug(f"HTTP sender started: {self.api_url}")
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.debug("HTTP sender stopped")

    def _headers(self, base: Dict[str, str]) -> Dict[str, str]:
        headers = dict(base)
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def send(self, batch: Sequence[LogRecord]) -> None:
        client = self._ensure_client()

        base_headers, kwargs = build_payload(batch, self.use_compression)
        try:
            response = await client.post(
                self.api_url,
                headers=self._headers(base_headers),
                timeout=self.request_timeout,
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise TransientDeliveryError(f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise map_http_status(response.status_code, response.reason_phrase)
