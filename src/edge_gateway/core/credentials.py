"""
Service-account OAuth token lifecycle for Google APIs.

Signs an RS256 JWT assertion with the service-account key, exchanges it
at the OAuth2 token endpoint and caches the bearer token until it is
within REFRESH_MARGIN seconds of expiry.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx
import jwt
from cryptography.hazmat.primitives import serialization

from .errors import GatewayConfigError, GatewayConnectionError, error_from_status

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

ASSERTION_LIFETIME = 3600
REFRESH_MARGIN = 300


@dataclass(frozen=True)
class CachedToken:
    """Bearer token plus its absolute expiry (epoch seconds)."""
    access_token: str
    expires_at: float

    def is_fresh(self, now: float, margin: float = REFRESH_MARGIN) -> bool:
        return now < self.expires_at - margin


def parse_service_account(service_account_json: str, provider: str = "vertex") -> Dict[str, Any]:
    """Parse service-account JSON and check the fields we sign with."""
    try:
        info = json.loads(service_account_json)
    except (TypeError, ValueError) as e:
        raise GatewayConfigError(f"Invalid service account JSON: {e}", provider=provider)

    if not isinstance(info, dict) or not info.get("client_email") or not info.get("private_key"):
        raise GatewayConfigError(
            "Service account JSON must contain client_email and private_key",
            provider=provider,
        )
    return info


def build_assertion(
    info: Dict[str, Any],
    now: int,
    audience: str = GOOGLE_TOKEN_URL,
    scope: str = CLOUD_PLATFORM_SCOPE,
    provider: str = "vertex",
) -> str:
    """
    Build the signed JWT assertion.

    Args:
        info: Parsed service-account info (client_email, private_key)
        now: Issued-at time in epoch seconds
        audience: Token endpoint the assertion is addressed to
        scope: OAuth scope requested

    Returns:
        Compact RS256 JWT
    """
    try:
        private_key = serialization.load_pem_private_key(
            info["private_key"].encode("utf-8"),
            password=None,
        )
    except (TypeError, ValueError) as e:
        raise GatewayConfigError(f"Invalid service account private key: {e}", provider=provider)

    payload = {
        "iss": info["client_email"],
        "sub": info["client_email"],
        "aud": audience,
        "iat": now,
        "exp": now + ASSERTION_LIFETIME,
        "scope": scope,
    }

    try:
        return jwt.encode(payload, private_key, algorithm="RS256", headers={"typ": "JWT"})
    except (TypeError, ValueError, jwt.PyJWTError) as e:
        raise GatewayConfigError(f"Failed to sign service account assertion: {e}", provider=provider)


class ServiceAccountTokenManager:
    """
    Produces and caches a Google OAuth2 access token.

    Refresh is single-flight: concurrent callers that find the cache
    stale wait on one lock and reuse the token the first caller fetched.
    """

    def __init__(
        self,
        service_account_json: str,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        timeout: float = 30.0,
        provider: str = "vertex",
    ):
        self._service_account_json = service_account_json
        self._client = http_client
        self._owns_client = http_client is None
        self._clock = clock
        self._timeout = timeout
        self._provider = provider
        self._token: Optional[CachedToken] = None
        self._lock = asyncio.Lock()

    @property
    def cached_token(self) -> Optional[CachedToken]:
        return self._token

    async def get_access_token(self) -> str:
        """Return a bearer token, refreshing it when close to expiry."""
        token = self._token
        if token and token.is_fresh(self._clock()):
            return token.access_token

        async with self._lock:
            token = self._token
            if token and token.is_fresh(self._clock()):
                return token.access_token
            self._token = await self._refresh()
            return self._token.access_token

    async def _refresh(self) -> CachedToken:
        info = parse_service_account(self._service_account_json, self._provider)
        token_url = info.get("token_uri") or GOOGLE_TOKEN_URL
        now = int(self._clock())
        assertion = build_assertion(info, now, audience=token_url, provider=self._provider)

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))

        try:
            response = await self._client.post(
                token_url,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.RequestError as e:
            raise GatewayConnectionError(f"Token exchange failed: {e}", provider=self._provider)

        if response.status_code != 200:
            logger.warning(f"Token exchange failed for {info['client_email']}: HTTP {response.status_code}")
            raise error_from_status(
                f"Token exchange failed: {response.text}",
                response.status_code,
                provider=self._provider,
                raw=response.text,
            )

        data = response.json()
        access_token = data.get("access_token")
        if not access_token:
            raise error_from_status(
                "Token exchange returned no access_token",
                502,
                provider=self._provider,
                raw=data,
            )

        expires_in = float(data.get("expires_in", ASSERTION_LIFETIME))
        logger.info(f"Refreshed access token for {info['client_email']} (expires in {int(expires_in)}s)")
        return CachedToken(access_token=access_token, expires_at=now + expires_in)

    async def aclose(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
