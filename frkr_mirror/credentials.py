"""
Authorization header for the ingestion endpoint.

Two schemes:
- Bearer: OAuth2 client-credentials grant after issuer discovery.
  Tokens are cached until 60s before expiry, discovery results for the
  lifetime of the process.
- Basic: static username/password, no network.

The token and issuer caches are plain state objects. Module-level defaults
make them process-wide; tests inject fresh instances. Concurrent refreshes
race benignly (last successful write wins), so no locking is done.
"""

import asyncio
import base64
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import httpx
from loguru import logger

from frkr_mirror.config import AuthConfig
from frkr_mirror.metrics import TOKEN_FETCHES

EXPIRY_MARGIN_MS = 60_000
DEFAULT_TOKEN_LIFETIME_MS = 3_600_000

OIDC_DISCOVERY_PATH = "/.well-known/openid-configuration"
OAUTH_DISCOVERY_PATH = "/.well-known/oauth-authorization-server"


class CredentialError(RuntimeError):
    """A bearer token could not be obtained."""


class IssuerConfigurationError(CredentialError):
    """Client-credentials selected but no issuer or auth domain configured."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def basic_auth_header(username: str, password: str) -> str:
    encoded = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


@dataclass
class TokenCacheEntry:
    access_token: str
    expires_at_ms: int


class TokenCache:
    """Single cached bearer token with expiry."""

    def __init__(self):
        self.entry: Optional[TokenCacheEntry] = None

    def get(self, now_ms: int) -> Optional[str]:
        """Cached token if it stays valid for at least the safety margin."""
        entry = self.entry
        if entry is None or now_ms >= entry.expires_at_ms - EXPIRY_MARGIN_MS:
            return None
        return entry.access_token

    def store(self, access_token: str, expires_in: Optional[float], now_ms: int) -> TokenCacheEntry:
        if expires_in:
            expires_at_ms = now_ms + int(float(expires_in) * 1000)
        else:
            expires_at_ms = now_ms + DEFAULT_TOKEN_LIFETIME_MS
        self.entry = TokenCacheEntry(access_token=access_token, expires_at_ms=expires_at_ms)
        return self.entry

    def clear(self):
        self.entry = None


@dataclass(frozen=True)
class IssuerMetadata:
    issuer: str
    token_endpoint: str


class IssuerCache:
    """Discovered issuer metadata keyed by issuer URL. Never invalidated."""

    def __init__(self):
        self._issuers: Dict[str, IssuerMetadata] = {}

    def get(self, issuer_url: str) -> Optional[IssuerMetadata]:
        return self._issuers.get(issuer_url)

    def set(self, issuer_url: str, metadata: IssuerMetadata):
        self._issuers[issuer_url] = metadata

    def __len__(self) -> int:
        return len(self._issuers)


DEFAULT_TOKEN_CACHE = TokenCache()
DEFAULT_ISSUER_CACHE = IssuerCache()


class CredentialProvider:
    """Produces the Authorization header value for mirrored requests."""

    def __init__(
        self,
        config: AuthConfig,
        token_cache: Optional[TokenCache] = None,
        issuer_cache: Optional[IssuerCache] = None,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.config = config
        self.token_cache = token_cache if token_cache is not None else DEFAULT_TOKEN_CACHE
        self.issuer_cache = issuer_cache if issuer_cache is not None else DEFAULT_ISSUER_CACHE
        self.clock = clock
        self._client = client

    @property
    def scheme(self) -> str:
        return "bearer" if self.config.uses_client_credentials else "basic"

    async def get_auth_header(self) -> str:
        """
        Build the Authorization header value.

        Returns:
            "Bearer <token>" when client credentials are configured,
            "Basic <base64>" otherwise

        Raises:
            CredentialError: the client-credentials flow failed
        """
        if not self.config.uses_client_credentials:
            return basic_auth_header(self.config.username, self.config.password)

        token = await self.get_access_token()
        return f"Bearer {token}"

    async def get_access_token(self) -> str:
        """Cached bearer token, fetching a new one on miss or near expiry."""
        cached = self.token_cache.get(self.clock())
        if cached:
            return cached

        try:
            token = await asyncio.wait_for(
                self._fetch_token(), timeout=self.config.token_timeout_seconds
            )
        except CredentialError as e:
            TOKEN_FETCHES.labels(outcome="failure").inc()
            logger.error(f"Failed to fetch access token: {e}")
            raise
        except asyncio.TimeoutError as e:
            TOKEN_FETCHES.labels(outcome="failure").inc()
            logger.error(
                f"Failed to fetch access token: timed out after {self.config.token_timeout_seconds}s"
            )
            raise CredentialError("Timed out fetching access token") from e
        except (httpx.HTTPError, ValueError) as e:
            TOKEN_FETCHES.labels(outcome="failure").inc()
            logger.error(f"Failed to fetch access token: {e}")
            raise CredentialError(str(e)) from e

        TOKEN_FETCHES.labels(outcome="success").inc()
        return token

    def issuer_url(self) -> str:
        if self.config.issuer:
            return self.config.issuer
        if self.config.auth_domain:
            return f"https://{self.config.auth_domain}"
        raise IssuerConfigurationError("OIDC issuer or auth_domain is required")

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.token_timeout_seconds)
        return self._client

    async def _fetch_token(self) -> str:
        issuer_url = self.issuer_url()

        metadata = self.issuer_cache.get(issuer_url)
        if metadata is None:
            metadata = await self._discover(issuer_url)
            self.issuer_cache.set(issuer_url, metadata)

        response = await self._http().post(
            metadata.token_endpoint,
            data={"grant_type": "client_credentials", "audience": self.config.audience},
            auth=(self.config.client_id, self.config.client_secret),
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        payload = response.json()

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise CredentialError("No access_token received from provider")

        entry = self.token_cache.store(access_token, payload.get("expires_in"), self.clock())
        logger.debug(f"Cached access token until {entry.expires_at_ms} (epoch ms)")
        return access_token

    async def _discover(self, issuer_url: str) -> IssuerMetadata:
        """Fetch the issuer's metadata document (OIDC first, then RFC 8414)."""
        if "/.well-known/" in issuer_url:
            candidates = [issuer_url]
        else:
            base = issuer_url.rstrip("/")
            candidates = [base + OIDC_DISCOVERY_PATH, base + OAUTH_DISCOVERY_PATH]

        last_error: Optional[Exception] = None
        for url in candidates:
            try:
                response = await self._http().get(url, headers={"Accept": "application/json"})
                response.raise_for_status()
                document = response.json()
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                continue

            token_endpoint = document.get("token_endpoint") if isinstance(document, dict) else None
            if not token_endpoint:
                raise CredentialError(f"Issuer {issuer_url} does not advertise a token_endpoint")

            logger.info(f"Discovered issuer {issuer_url} (token endpoint {token_endpoint})")
            return IssuerMetadata(
                issuer=document.get("issuer", issuer_url), token_endpoint=token_endpoint
            )

        raise CredentialError(f"Issuer discovery failed for {issuer_url}: {last_error}") from last_error
