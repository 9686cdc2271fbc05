"""
Google Vertex AI / Gemini adapters.

Gemini models are reached either through the Gemini API with an API key
or through Vertex AI with a service-account bearer token. Claude models
in Vertex Model Garden use the Anthropic wire behind the same token.
"""

import logging
from typing import AsyncIterator, Dict, Optional, Tuple

from .base import HTTPProviderAdapter
from ..core.config import VertexClaudeConfig, VertexConfig
from ..core.credentials import ServiceAccountTokenManager
from ..core.streaming import SSETranscoder, anthropic_event_to_choice, gemini_event_to_choice
from ..models.request import ChatRequest
from ..models.response import ChatResponse

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"
VERTEX_ANTHROPIC_VERSION = "vertex-2023-10-16"


def vertex_base_url(region: str) -> str:
    return f"https://{region}-aiplatform.googleapis.com/v1"


class _ServiceAccountMixin:
    """Bearer-token headers from a (possibly shared) token manager."""

    _token_manager: Optional[ServiceAccountTokenManager]
    _owns_token_manager = False

    async def _bearer_headers(self) -> Dict[str, str]:
        token = await self._token_manager.get_access_token()
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    async def disconnect(self) -> None:
        await super().disconnect()
        if self._token_manager and self._owns_token_manager:
            await self._token_manager.aclose()


class VertexAIAdapter(_ServiceAccountMixin, HTTPProviderAdapter):
    """
    Gemini adapter.

    Uses the service account when project id and key are configured,
    otherwise the Gemini API key.
    """

    provider_name = "vertex"
    label = "Vertex/Gemini"

    def __init__(
        self,
        config: VertexConfig,
        token_manager: Optional[ServiceAccountTokenManager] = None,
        **kwargs,
    ):
        super().__init__(config, **kwargs)
        self._token_manager = None
        if config.uses_service_account:
            self._owns_token_manager = token_manager is None
            self._token_manager = token_manager or ServiceAccountTokenManager(
                config.service_account_json,
                provider=self.provider_name,
            )
        logger.info(f"Vertex adapter using {'service account' if self._token_manager else 'Gemini API key'} auth")

    @property
    def uses_service_account(self) -> bool:
        return self._token_manager is not None

    def build_vertex_url(self, model: str, stream: bool) -> str:
        action = "streamGenerateContent" if stream else "generateContent"
        region = self._config.region
        return (
            f"{vertex_base_url(region)}/projects/{self._config.project_id}/"
            f"locations/{region}/publishers/google/models/{model}:{action}"
        )

    def build_gemini_url(self, model: str, stream: bool) -> str:
        action = "streamGenerateContent" if stream else "generateContent"
        return f"{GEMINI_API_URL}/models/{model}:{action}"

    async def _target(self, model: str, stream: bool) -> Tuple[str, Dict[str, str], Dict[str, str]]:
        """Resolve (url, headers, query params) for the configured auth path."""
        params: Dict[str, str] = {"alt": "sse"} if stream else {}

        if self.uses_service_account:
            return self.build_vertex_url(model, stream), await self._bearer_headers(), params

        params["key"] = self._config.gemini_api_key
        return self.build_gemini_url(model, stream), {"Content-Type": "application/json"}, params

    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        model = request.model or self._config.model
        url, headers, params = await self._target(model, stream=False)
        data = await self._post_json(url, request.to_gemini_format(), headers, params=params)
        return ChatResponse.from_gemini(data, model=model)

    async def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[bytes]:
        model = request.model or self._config.model
        url, headers, params = await self._target(model, stream=True)
        response = await self._open_stream(url, request.to_gemini_format(), headers, params=params)
        return self._stream_body(response, SSETranscoder(gemini_event_to_choice, model))


class VertexClaudeAdapter(_ServiceAccountMixin, HTTPProviderAdapter):
    """Anthropic models hosted in Vertex AI Model Garden."""

    provider_name = "vertex-claude"
    label = "Vertex AI (Claude)"

    def __init__(
        self,
        config: VertexClaudeConfig,
        token_manager: Optional[ServiceAccountTokenManager] = None,
        **kwargs,
    ):
        super().__init__(config, **kwargs)
        self._owns_token_manager = token_manager is None
        self._token_manager = token_manager or ServiceAccountTokenManager(
            config.service_account_json,
            provider=self.provider_name,
        )

    def build_url(self, model: str, stream: bool) -> str:
        action = "streamRawPredict" if stream else "rawPredict"
        region = self._config.region
        return (
            f"{vertex_base_url(region)}/projects/{self._config.project_id}/"
            f"locations/{region}/publishers/anthropic/models/{model}:{action}"
        )

    def _build_payload(self, request: ChatRequest, stream: bool) -> Dict:
        # Vertex takes the model from the URL and the API version from the body.
        payload = request.to_anthropic_format(stream=stream)
        payload["anthropic_version"] = VERTEX_ANTHROPIC_VERSION
        return payload

    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        model = request.model or self._config.model
        data = await self._post_json(
            self.build_url(model, stream=False),
            self._build_payload(request, stream=False),
            await self._bearer_headers(),
        )
        return ChatResponse.from_anthropic(data, model=model)

    async def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[bytes]:
        model = request.model or self._config.model
        response = await self._open_stream(
            self.build_url(model, stream=True),
            self._build_payload(request, stream=True),
            await self._bearer_headers(),
        )
        return self._stream_body(response, SSETranscoder(anthropic_event_to_choice, model))
