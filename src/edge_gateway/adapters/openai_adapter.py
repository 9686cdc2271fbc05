"""
Direct OpenAI API adapter.

Requests and responses already use the canonical shape, so the body is
forwarded with only the set optional fields and streams are relayed
byte for byte.
"""

from typing import AsyncIterator, Dict

from .base import HTTPProviderAdapter
from ..core.config import OpenAIConfig
from ..models.request import ChatRequest
from ..models.response import ChatResponse


class OpenAIAdapter(HTTPProviderAdapter):
    """
    Direct OpenAI API adapter.

    Also works against any OpenAI-compatible base URL.
    """

    provider_name = "openai"
    label = "OpenAI"

    def __init__(self, config: OpenAIConfig, **kwargs):
        super().__init__(config, **kwargs)
        self._base_url = config.base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_key}",
        }
        if self._config.organization:
            headers["OpenAI-Organization"] = self._config.organization
        return headers

    def _model(self, request: ChatRequest) -> str:
        return request.model or self._config.model

    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        """Create a chat completion via OpenAI API."""
        model = self._model(request)
        data = await self._post_json(
            f"{self._base_url}/chat/completions",
            request.to_openai_format(model=model, stream=False),
            self._headers(),
        )
        return ChatResponse.from_openai(data, model=model)

    async def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[bytes]:
        """Create a streaming chat completion via OpenAI API."""
        response = await self._open_stream(
            f"{self._base_url}/chat/completions",
            request.to_openai_format(model=self._model(request), stream=True),
            self._headers(),
        )
        return self._stream_body(response)
