"""
Configuration via Pydantic BaseSettings. Single source of truth for all env vars.

All fields are overridable at runtime via FRKR_* environment variables.
Precedence: explicit override > environment > built-in default.
"""

from typing import Optional

from pydantic_settings import BaseSettings

DEFAULT_HTTP_INGEST_URL = "http://localhost:8082"
DEFAULT_GRPC_INGEST_ADDRESS = "localhost:50051"
DEFAULT_AUDIENCE = "https://api.frkr.io"


class IngestConfig(BaseSettings):
    """Ingestion endpoint and transport selection."""

    transport: str = "http"
    ingest_url: Optional[str] = None
    send_timeout_seconds: float = 5.0

    model_config = {"env_prefix": "FRKR_"}

    @property
    def uses_grpc(self) -> bool:
        return self.transport.strip().lower() == "grpc"

    @property
    def resolved_url(self) -> str:
        """Ingest URL, or the default for the selected transport."""
        if self.ingest_url:
            return self.ingest_url
        return DEFAULT_GRPC_INGEST_ADDRESS if self.uses_grpc else DEFAULT_HTTP_INGEST_URL


class AuthConfig(BaseSettings):
    """Credentials for the ingestion endpoint.

    Client-credentials is used when both client_id and client_secret are set,
    basic auth otherwise.
    """

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    issuer: Optional[str] = None
    auth_domain: Optional[str] = None
    audience: str = DEFAULT_AUDIENCE
    username: str = "testuser"
    password: str = "testpass"
    token_timeout_seconds: float = 10.0

    model_config = {"env_prefix": "FRKR_"}

    @property
    def uses_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


class StreamConfig(BaseSettings):
    """Environment fallback for the single-stream routing style."""

    stream_id: Optional[str] = None

    model_config = {"env_prefix": "FRKR_"}


class LoggingConfig(BaseSettings):
    """Log output configuration."""

    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_prefix": "FRKR_"}


class Settings:
    """Aggregated settings from all config groups.

    Keyword overrides are routed to the group that declares them::

        Settings(transport="grpc", client_id="svc", client_secret="s3cret")
    """

    _GROUPS = {
        "ingest": IngestConfig,
        "auth": AuthConfig,
        "stream": StreamConfig,
        "logging": LoggingConfig,
    }

    def __init__(self, **overrides):
        remaining = dict(overrides)
        for attr, group_cls in self._GROUPS.items():
            group_overrides = {
                key: remaining.pop(key) for key in list(remaining) if key in group_cls.model_fields
            }
            setattr(self, attr, group_cls(**group_overrides))

        if remaining:
            unknown = ", ".join(sorted(remaining))
            raise TypeError(f"Unknown mirror settings: {unknown}")
