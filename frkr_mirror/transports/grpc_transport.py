"""
gRPC transport: unary IngestService/Ingest call over an insecure aio channel.

The channel is opened on first send and reused. The auth header travels as
``authorization`` call metadata.
"""

from typing import Any, Dict, Mapping, Optional

import grpc
from loguru import logger

from frkr_mirror.config import DEFAULT_GRPC_INGEST_ADDRESS
from frkr_mirror.metrics import DELIVERY_FAILURES
from frkr_mirror.schemas import MirrorEnvelope
from frkr_mirror.transports.base import Transport
from frkr_mirror.transports.ingest_proto import IngestRequest, IngestServiceStub, MirroredRequest


def _text(value: Any) -> str:
    """gRPC map values must be strings."""
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value)
    return str(value)


def _text_map(values: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    if not values:
        return {}
    return {str(key): _text(value) for key, value in values.items()}


def build_ingest_request(envelope: MirrorEnvelope):
    """Convert an envelope into an ingest.v1.IngestRequest message."""
    captured = envelope.request
    return IngestRequest(
        stream_id=envelope.stream_id,
        request=MirroredRequest(
            method=captured.method,
            path=captured.path,
            headers=_text_map(captured.headers),
            body=captured.body or "",
            query=_text_map(captured.query),
            timestamp_ns=captured.timestamp_ns,
            request_id=captured.request_id,
        ),
    )


class GrpcTransport(Transport):
    """Sends envelopes to the ingest gateway's gRPC endpoint."""

    name = "grpc"

    def __init__(
        self,
        address: str = DEFAULT_GRPC_INGEST_ADDRESS,
        timeout_seconds: float = 5.0,
        channel: Optional[grpc.aio.Channel] = None,
    ):
        self.address = address
        self.timeout_seconds = timeout_seconds
        self._channel = channel
        self._stub = None

    def _ingest_stub(self) -> IngestServiceStub:
        if self._channel is None:
            self._channel = grpc.aio.insecure_channel(self.address)
        if self._stub is None:
            self._stub = IngestServiceStub(self._channel)
        return self._stub

    async def send(self, envelope: MirrorEnvelope, auth_header: str) -> bool:
        message = build_ingest_request(envelope)
        metadata = (("authorization", auth_header),) if auth_header else ()

        try:
            await self._ingest_stub().Ingest(message, metadata=metadata, timeout=self.timeout_seconds)
        except grpc.RpcError as e:
            DELIVERY_FAILURES.labels(transport=self.name).inc()
            details = e.details() if isinstance(e, grpc.aio.AioRpcError) else str(e)
            logger.error(f"Failed to mirror request (gRPC): {details}")
            return False

        logger.debug(f"Mirrored {envelope.request.request_id} to stream {envelope.stream_id}")
        return True

    async def aclose(self):
        if self._channel is not None:
            await self._channel.close()
            self._channel = None
            self._stub = None
