"""
Starlette middleware that mirrors requests to the ingestion endpoint.

- MirrorMiddleware: captures each request, then always continues it
"""

from typing import Any, Optional

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from frkr_mirror.config import Settings
from frkr_mirror.metrics import SKIPPED_COUNT
from frkr_mirror.mirror import Mirror
from frkr_mirror.routing import DynamicStream
from frkr_mirror.schemas import RequestView


class MirrorMiddleware(BaseHTTPMiddleware):
    """Mirror request metadata without touching the request/response cycle."""

    def __init__(
        self,
        app: ASGIApp,
        mirror: Optional[Mirror] = None,
        stream_id: Any = None,
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__(app)
        self.mirror = mirror if mirror is not None else Mirror(stream_id=stream_id, settings=settings)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            # The body is read only once a stream resolves; a dynamic resolver may need it up front
            needs_body = isinstance(self.mirror.routing, DynamicStream)
            view = await RequestView.from_request(request, include_body=needs_body)
            await self.mirror.capture(view, read_body=request.body)
        except Exception:
            # Mirroring is best-effort: nothing here may fail the host request
            SKIPPED_COUNT.labels(reason="error").inc()
            logger.exception(f"Request mirroring failed for {request.method} {request.url.path}")

        return await call_next(request)
