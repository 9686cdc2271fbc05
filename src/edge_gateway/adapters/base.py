"""
HTTP plumbing shared by all provider adapters.
"""

import logging
from typing import Any, AsyncIterator, Dict, Optional, Set

import httpx

from ..core.config import AnyProviderConfig
from ..core.errors import (
    GatewayConnectionError,
    GatewayProviderError,
    error_from_status,
)
from ..core.interface import AbstractProvider, ProviderCapability
from ..core.streaming import SSETranscoder, transcode_stream

logger = logging.getLogger(__name__)


class HTTPProviderAdapter(AbstractProvider):
    """
    Base adapter owning an httpx.AsyncClient.

    Subclasses set `provider_name`, `label` (used in error messages) and
    implement the request/response translation.
    """

    provider_name = ""
    label = ""
    supports_streaming = True

    def __init__(
        self,
        config: AnyProviderConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        self._config = config
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def name(self) -> str:
        return self.provider_name

    @property
    def config(self) -> AnyProviderConfig:
        return self._config

    @property
    def capabilities(self) -> Set[ProviderCapability]:
        capabilities = {ProviderCapability.CHAT_COMPLETION, ProviderCapability.VISION}
        if self.supports_streaming:
            capabilities.add(ProviderCapability.STREAMING)
        return capabilities

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Initialize HTTP client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout))
        self._owns_client = True
        logger.info(f"Connected {self.name} adapter")

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info(f"Disconnected {self.name} adapter")

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        if not self._client:
            await self.connect()

        try:
            response = await self._client.post(url, json=payload, headers=headers, params=params)
        except httpx.TimeoutException as e:
            raise GatewayConnectionError(f"{self.label} request timed out: {e}", provider=self.name, status=504)
        except httpx.RequestError as e:
            raise GatewayConnectionError(f"{self.label} request failed: {e}", provider=self.name)

        self._check_response_errors(response, response.text)

        try:
            return response.json()
        except ValueError:
            raise GatewayProviderError(
                f"{self.label} returned a non-JSON response",
                provider=self.name,
                raw=response.text,
            )

    async def _open_stream(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Send a streaming POST and return the open, status-checked response."""
        if not self._client:
            await self.connect()

        request = self._client.build_request("POST", url, json=payload, headers=headers, params=params)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise GatewayConnectionError(f"{self.label} stream timed out: {e}", provider=self.name, status=504)
        except httpx.RequestError as e:
            raise GatewayConnectionError(f"{self.label} stream failed: {e}", provider=self.name)

        if not (200 <= response.status_code < 300):
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await response.aclose()
            self._check_response_errors(response, body)

        return response

    async def _stream_body(
        self,
        response: httpx.Response,
        transcoder: Optional[SSETranscoder] = None,
    ) -> AsyncIterator[bytes]:
        """Relay (or transcode) an open upstream body; closing it stops the upstream read."""
        try:
            if transcoder is None:
                async for chunk in response.aiter_bytes():
                    yield chunk
            else:
                async for event in transcode_stream(response.aiter_bytes(), transcoder):
                    yield event
        finally:
            await response.aclose()

    def _check_response_errors(self, response: httpx.Response, body: str) -> None:
        """Raise the classified GatewayError for a non-2xx response."""
        if 200 <= response.status_code < 300:
            return

        logger.warning(f"{self.name} upstream returned HTTP {response.status_code}")
        raise error_from_status(
            f"{self.label} error: {body}",
            response.status_code,
            provider=self.name,
            raw=body,
            retry_after=response.headers.get("retry-after"),
        )
