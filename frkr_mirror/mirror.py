"""
Mirroring engine: resolve stream -> build envelope -> resolve auth -> dispatch.

Framework independent; MirrorMiddleware adapts it to Starlette. Delivery runs
as a detached asyncio task whose outcome is only logged, so the request path
never waits on the ingestion endpoint.
"""

import asyncio
import inspect
import time
import uuid
from dataclasses import replace
from typing import Any, Awaitable, Callable, Optional, Set

from loguru import logger

from frkr_mirror.config import Settings
from frkr_mirror.credentials import CredentialError, CredentialProvider
from frkr_mirror.metrics import DELIVERY_FAILURES, MIRRORED_COUNT, SKIPPED_COUNT
from frkr_mirror.routing import build_routing_config, normalize_path, resolve_stream
from frkr_mirror.schemas import MirroredRequest, MirrorEnvelope, RequestView, serialize_body
from frkr_mirror.transports import Transport, create_transport


def new_request_id(now_ms: int) -> str:
    """Process-unique id: capture time plus random suffix."""
    return f"req-{now_ms}-{uuid.uuid4().hex[:9]}"


def build_envelope(stream_id: str, view: RequestView, now_ms: Optional[int] = None) -> MirrorEnvelope:
    """Snapshot a request view into an envelope for the given stream."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return MirrorEnvelope(
        stream_id=str(stream_id),
        request=MirroredRequest(
            method=view.method,
            path=normalize_path(view),
            headers=dict(view.headers or {}),
            body=serialize_body(view.body),
            query=view.query_params(),
            timestamp_ns=now_ms * 1_000_000,
            request_id=new_request_id(now_ms),
        ),
    )


class Mirror:
    """Per-application mirroring state: routing, credentials and transport.

    Args:
        stream_id: Routing configuration (str, ordered mapping, list of
            (pattern, stream_id) pairs, or callable). Falls back to
            FRKR_STREAM_ID when not given.
        settings: Settings; built from the environment when omitted
        transport: Transport override (defaults to create_transport)
        credentials: CredentialProvider override
    """

    def __init__(
        self,
        stream_id: Any = None,
        settings: Optional[Settings] = None,
        transport: Optional[Transport] = None,
        credentials: Optional[CredentialProvider] = None,
    ):
        self.settings = settings if settings is not None else Settings()

        if stream_id is None or stream_id == "":
            stream_id = self.settings.stream.stream_id
        self.routing = build_routing_config(stream_id)

        self.transport = transport if transport is not None else create_transport(self.settings.ingest)
        self.credentials = (
            credentials if credentials is not None else CredentialProvider(self.settings.auth)
        )

        # Strong references so running deliveries are not garbage-collected
        self._pending: Set[asyncio.Task] = set()

        logger.info(
            f"Request mirroring via {self.transport.name} "
            f"({self.settings.ingest.resolved_url}), auth={self.credentials.scheme}"
        )

    @property
    def pending_deliveries(self) -> int:
        return len(self._pending)

    async def capture(
        self,
        view: RequestView,
        read_body: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> bool:
        """
        Mirror one request if a stream resolves for it.

        Awaits only the credential lookup (network on token cache miss);
        delivery is handed to a background task.

        Args:
            view: The request to mirror
            read_body: Loads the body when the view has none; called only
                after a stream resolved, so unmirrored requests are never buffered

        Returns:
            True if an envelope was dispatched, False if the request was skipped
        """
        stream_id = resolve_stream(self.routing, view)
        if inspect.isawaitable(stream_id):
            stream_id = await stream_id
        if not stream_id:
            SKIPPED_COUNT.labels(reason="no_stream").inc()
            return False

        if view.body is None and read_body is not None:
            view = replace(view, body=await read_body())

        envelope = build_envelope(stream_id, view)

        try:
            auth_header = await self.credentials.get_auth_header()
        except CredentialError:
            SKIPPED_COUNT.labels(reason="auth_failed").inc()
            logger.warning(f"Skipping mirror of {envelope.request.path}: no credentials")
            return False

        self._dispatch(envelope, auth_header)
        return True

    def _dispatch(self, envelope: MirrorEnvelope, auth_header: str):
        task = asyncio.get_running_loop().create_task(self.transport.send(envelope, auth_header))
        self._pending.add(task)
        task.add_done_callback(self._on_delivered)
        MIRRORED_COUNT.labels(transport=self.transport.name).inc()

    def _on_delivered(self, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            logger.debug(f"Mirror delivery cancelled ({self.transport.name})")
            return
        error = task.exception()
        if error is not None:
            DELIVERY_FAILURES.labels(transport=self.transport.name).inc()
            logger.opt(exception=error).error(
                f"Failed to mirror request ({self.transport.name}): {error}"
            )

    async def drain(self):
        """Wait for in-flight deliveries. For shutdown and tests only."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self):
        """Drain deliveries, then close transport and identity-provider connections."""
        await self.drain()
        await self.transport.aclose()
        await self.credentials.aclose()
