"""
Pluggable delivery of mirrored requests.

Provides:
- Transport: the send(envelope, auth_header) capability
- HttpTransport: JSON over HTTP POST
- GrpcTransport: ingest.v1.IngestService over gRPC
- create_transport: picks one variant from settings, once
"""

from frkr_mirror.config import IngestConfig
from frkr_mirror.transports.base import Transport
from frkr_mirror.transports.grpc_transport import GrpcTransport
from frkr_mirror.transports.http_transport import HttpTransport


def create_transport(config: IngestConfig) -> Transport:
    """Build the transport selected by ``config.transport`` ("grpc" or anything else for HTTP)."""
    if config.uses_grpc:
        return GrpcTransport(address=config.resolved_url, timeout_seconds=config.send_timeout_seconds)
    return HttpTransport(base_url=config.resolved_url, timeout_seconds=config.send_timeout_seconds)


__all__ = [
    "Transport",
    "HttpTransport",
    "GrpcTransport",
    "create_transport",
]
