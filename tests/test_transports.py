"""
Tests for the HTTP and gRPC transports and the transport factory.

HTTP uses an httpx MockTransport; gRPC runs an in-process grpc.aio server.
"""

import json

import grpc
import httpx
import pytest

from frkr_mirror.config import IngestConfig
from frkr_mirror.schemas import MirroredRequest, MirrorEnvelope
from frkr_mirror.transports import GrpcTransport, HttpTransport, create_transport
from frkr_mirror.transports.grpc_transport import build_ingest_request
from frkr_mirror.transports.ingest_proto import (
    IngestRequest,
    IngestResponse,
    IngestServiceServicer,
    MirroredRequest as MirroredRequestMessage,
    add_IngestServiceServicer_to_server,
)

AUTH = "Basic dTpw"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_envelope(**request_overrides) -> MirrorEnvelope:
    request = {
        "method": "POST",
        "path": "/api/orders",
        "headers": {"content-type": "application/json", "x-tenant": "acme"},
        "body": '{"item": "book"}',
        "query": {"page": "2"},
        "timestamp_ns": 1_700_000_000_000 * 1_000_000,
        "request_id": "req-1700000000000-abc123def",
    }
    request.update(request_overrides)
    return MirrorEnvelope(stream_id="orders-stream", request=MirroredRequest(**request))


def recording_client(responses=None):
    """httpx client that records requests and answers 202 (or the given status)."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(responses or 202)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), seen


class IngestServicer(IngestServiceServicer):
    """Delegates Ingest to a plain coroutine so each test supplies its own."""

    def __init__(self, handler):
        self.handler = handler

    async def Ingest(self, request, context):
        return await self.handler(request, context)


async def start_ingest_server(handler):
    server = grpc.aio.server()
    add_IngestServiceServicer_to_server(IngestServicer(handler), server)
    port = server.add_insecure_port("127.0.0.1:0")
    await server.start()
    return server, port


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestCreateTransport:
    def test_http_by_default(self):
        transport = create_transport(IngestConfig())
        assert isinstance(transport, HttpTransport)
        assert transport.ingest_url == "http://localhost:8082/ingest"

    def test_grpc_selected(self):
        transport = create_transport(IngestConfig(transport="grpc"))
        assert isinstance(transport, GrpcTransport)
        assert transport.address == "localhost:50051"

    def test_unknown_transport_falls_back_to_http(self):
        assert isinstance(create_transport(IngestConfig(transport="carrier-pigeon")), HttpTransport)

    def test_configured_url_and_timeout(self):
        transport = create_transport(
            IngestConfig(ingest_url="http://ingest.internal:9000/", send_timeout_seconds=1.5)
        )
        assert transport.ingest_url == "http://ingest.internal:9000/ingest"
        assert transport.timeout_seconds == 1.5


# ---------------------------------------------------------------------------
# HTTP transport
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestHttpTransport:
    async def test_posts_envelope_as_json(self):
        client, seen = recording_client()
        transport = HttpTransport("http://ingest.test", client=client)

        assert await transport.send(make_envelope(), AUTH) is True

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "http://ingest.test/ingest"
        assert request.headers["content-type"] == "application/json"
        assert request.headers["authorization"] == AUTH

        payload = json.loads(request.content)
        assert payload["stream_id"] == "orders-stream"
        assert payload["request"]["method"] == "POST"
        assert payload["request"]["path"] == "/api/orders"
        assert payload["request"]["headers"]["x-tenant"] == "acme"
        assert payload["request"]["body"] == '{"item": "book"}'
        assert payload["request"]["query"] == {"page": "2"}
        assert payload["request"]["timestamp_ns"] == 1_700_000_000_000_000_000
        assert payload["request"]["request_id"] == "req-1700000000000-abc123def"

    async def test_empty_body_headers_query(self):
        client, seen = recording_client()
        transport = HttpTransport("http://ingest.test", client=client)

        assert await transport.send(make_envelope(body="", headers={}, query={}), AUTH) is True
        payload = json.loads(seen[0].content)
        assert payload["request"]["body"] == ""
        assert payload["request"]["headers"] == {}
        assert payload["request"]["query"] == {}

    async def test_connection_refused_is_logged_not_raised(self, log_messages):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        transport = HttpTransport("http://ingest.test", client=client)

        assert await transport.send(make_envelope(), AUTH) is False
        assert any("Failed to mirror request (HTTP)" in m for m in log_messages)

    async def test_non_2xx_is_a_failure(self, log_messages):
        client, _ = recording_client(responses=503)
        transport = HttpTransport("http://ingest.test", client=client)

        assert await transport.send(make_envelope(), AUTH) is False
        assert any("503" in m for m in log_messages)

    async def test_aclose_is_idempotent(self):
        client, _ = recording_client()
        transport = HttpTransport("http://ingest.test", client=client)
        await transport.aclose()
        await transport.aclose()


# ---------------------------------------------------------------------------
# gRPC transport
# ---------------------------------------------------------------------------


class TestIngestSchema:
    def test_loaded_from_proto_file(self):
        file_descriptor = IngestRequest.DESCRIPTOR.file
        assert file_descriptor.name == "frkr_mirror/protos/ingest.proto"
        assert file_descriptor.package == "ingest.v1"
        service = file_descriptor.services_by_name["IngestService"]
        assert service.methods_by_name["Ingest"].input_type is IngestRequest.DESCRIPTOR

    def test_field_numbers(self):
        fields = {f.name: f.number for f in MirroredRequestMessage.DESCRIPTOR.fields}
        assert fields == {
            "method": 1,
            "path": 2,
            "headers": 3,
            "body": 4,
            "query": 5,
            "timestamp_ns": 6,
            "request_id": 7,
        }
        assert MirroredRequestMessage.DESCRIPTOR.fields_by_name["headers"].message_type.GetOptions().map_entry
        assert {f.name: f.number for f in IngestRequest.DESCRIPTOR.fields} == {
            "stream_id": 1,
            "request": 2,
        }


class TestBuildIngestRequest:
    def test_fields_copied_one_for_one(self):
        message = build_ingest_request(make_envelope())
        assert message.stream_id == "orders-stream"
        assert message.request.method == "POST"
        assert message.request.path == "/api/orders"
        assert message.request.body == '{"item": "book"}'
        assert message.request.request_id == "req-1700000000000-abc123def"
        assert message.request.timestamp_ns == 1_700_000_000_000_000_000
        assert dict(message.request.headers) == {
            "content-type": "application/json",
            "x-tenant": "acme",
        }
        assert dict(message.request.query) == {"page": "2"}

    def test_values_coerced_to_text(self):
        envelope = make_envelope(
            headers={"accept": ["text/html", "application/json"], "content-length": 17},
            query={"page": 2, "empty": None},
        )
        message = build_ingest_request(envelope)
        assert message.request.headers["accept"] == "text/html, application/json"
        assert message.request.headers["content-length"] == "17"
        assert dict(message.request.query) == {"page": "2", "empty": ""}

    def test_empty_maps_and_body(self):
        message = build_ingest_request(make_envelope(body="", headers={}, query={}))
        assert message.request.body == ""
        assert len(message.request.headers) == 0
        assert len(message.request.query) == 0

    def test_wire_round_trip(self):
        message = build_ingest_request(make_envelope())
        decoded = IngestRequest.FromString(message.SerializeToString())
        assert decoded == message


@pytest.mark.asyncio
class TestGrpcTransport:
    async def test_delivers_with_authorization_metadata(self):
        received = []

        async def ingest(request, context):
            received.append((request, dict(context.invocation_metadata())))
            return IngestResponse()

        server, port = await start_ingest_server(ingest)
        transport = GrpcTransport(f"127.0.0.1:{port}", timeout_seconds=5.0)
        try:
            assert await transport.send(make_envelope(), AUTH) is True
        finally:
            await transport.aclose()
            await server.stop(None)

        request, metadata = received[0]
        assert request.stream_id == "orders-stream"
        assert request.request.path == "/api/orders"
        assert dict(request.request.query) == {"page": "2"}
        assert metadata["authorization"] == AUTH

    async def test_channel_reused_between_sends(self):
        calls = []

        async def ingest(request, context):
            calls.append(request.request.request_id)
            return IngestResponse()

        server, port = await start_ingest_server(ingest)
        transport = GrpcTransport(f"127.0.0.1:{port}")
        try:
            await transport.send(make_envelope(request_id="req-1"), AUTH)
            channel = transport._channel
            await transport.send(make_envelope(request_id="req-2"), AUTH)
            assert transport._channel is channel
        finally:
            await transport.aclose()
            await server.stop(None)

        assert calls == ["req-1", "req-2"]

    async def test_rpc_error_is_logged_not_raised(self, log_messages):
        async def reject(request, context):
            await context.abort(grpc.StatusCode.UNAUTHENTICATED, "bad token")

        server, port = await start_ingest_server(reject)
        transport = GrpcTransport(f"127.0.0.1:{port}")
        try:
            assert await transport.send(make_envelope(), AUTH) is False
        finally:
            await transport.aclose()
            await server.stop(None)

        assert any("Failed to mirror request (gRPC): bad token" in m for m in log_messages)

    async def test_unreachable_endpoint(self, log_messages):
        transport = GrpcTransport("127.0.0.1:1", timeout_seconds=2.0)
        try:
            assert await transport.send(make_envelope(), AUTH) is False
        finally:
            await transport.aclose()
        assert any("Failed to mirror request (gRPC)" in m for m in log_messages)
