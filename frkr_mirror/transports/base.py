"""
Transport capability shared by the HTTP and gRPC variants.
"""

from abc import ABC, abstractmethod

from frkr_mirror.schemas import MirrorEnvelope


class Transport(ABC):
    """Delivers a mirror envelope to the ingestion endpoint.

    send() never raises for delivery problems: failures are logged and
    reported as False.
    """

    name = "transport"

    @abstractmethod
    async def send(self, envelope: MirrorEnvelope, auth_header: str) -> bool:
        """Deliver one envelope. Returns True if the endpoint accepted it."""

    async def aclose(self):
        """Release connections. Safe to call more than once."""
