"""
Request views and the mirrored-request envelope.

RequestView is the read-only projection of a host request the engine works on.
MirrorEnvelope is what a transport delivers to the ingestion endpoint.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import parse_qsl, urlsplit

from pydantic import BaseModel, Field
from starlette.requests import Request

HeaderValue = Union[str, List[str]]


@dataclass(frozen=True)
class RequestView:
    """Read-only projection of an inbound request."""

    method: str
    path: Optional[str] = None
    url: Optional[str] = None
    headers: Mapping[str, HeaderValue] = field(default_factory=dict)
    body: Any = None
    query: Optional[Mapping[str, str]] = None

    @classmethod
    async def from_request(cls, request: Request, include_body: bool = True) -> "RequestView":
        """Build a view from a Starlette request.

        With include_body=False the body is left as None and the request's
        receive channel is not touched.
        """
        body = await request.body() if include_body else None

        # Repeated headers are folded into one comma-separated value
        headers: Dict[str, str] = {}
        for key, value in request.headers.items():
            headers[key] = f"{headers[key]}, {value}" if key in headers else value

        raw_path = request.url.path
        query_string = request.url.query
        return cls(
            method=request.method,
            path=request.scope.get("path"),
            url=f"{raw_path}?{query_string}" if query_string else raw_path,
            headers=headers,
            body=body,
            query=dict(request.query_params),
        )

    def query_params(self) -> Dict[str, str]:
        """Query mapping, parsed from the raw URL when the framework gave none."""
        if self.query is not None:
            return dict(self.query)
        if not self.url:
            return {}
        return dict(parse_qsl(urlsplit(self.url).query, keep_blank_values=True))


def serialize_body(body: Any) -> str:
    """Render a request body as text. Empty or missing bodies become ``""``."""
    if body is None or body == b"" or body == "":
        return ""
    if isinstance(body, (bytes, bytearray)):
        return bytes(body).decode("utf-8", errors="replace")
    if isinstance(body, str):
        return body
    return json.dumps(body, default=str)


class MirroredRequest(BaseModel):
    """Captured request metadata."""

    method: str
    path: str
    headers: Dict[str, Any] = Field(default_factory=dict)
    body: str = ""
    query: Dict[str, Any] = Field(default_factory=dict)
    timestamp_ns: int
    request_id: str


class MirrorEnvelope(BaseModel):
    """Ingestion payload: one mirrored request bound to its stream."""

    stream_id: str
    request: MirroredRequest
