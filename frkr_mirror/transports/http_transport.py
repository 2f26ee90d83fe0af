"""
HTTP-JSON transport: POST {base_url}/ingest with the envelope as the JSON body.
"""

from typing import Optional

import httpx
from loguru import logger

from frkr_mirror.config import DEFAULT_HTTP_INGEST_URL
from frkr_mirror.metrics import DELIVERY_FAILURES
from frkr_mirror.schemas import MirrorEnvelope
from frkr_mirror.transports.base import Transport


class HttpTransport(Transport):
    """Posts envelopes to the ingest gateway over a reused httpx client."""

    name = "http"

    def __init__(
        self,
        base_url: str = DEFAULT_HTTP_INGEST_URL,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client

    @property
    def ingest_url(self) -> str:
        return f"{self.base_url}/ingest"

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    async def send(self, envelope: MirrorEnvelope, auth_header: str) -> bool:
        try:
            response = await self._http().post(
                self.ingest_url,
                json=envelope.model_dump(mode="json"),
                headers={
                    "Content-Type": "application/json",
                    "Authorization": auth_header,
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            DELIVERY_FAILURES.labels(transport=self.name).inc()
            logger.error(f"Failed to mirror request (HTTP): {e}")
            return False

        logger.debug(
            f"Mirrored {envelope.request.request_id} to stream {envelope.stream_id} "
            f"({response.status_code})"
        )
        return True

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
