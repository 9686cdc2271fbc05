"""
Azure AI Foundry (model catalog) adapter.

One endpoint serves two wire formats: Claude models go to the
Anthropic Messages route, everything else to the OpenAI-compatible
chat completions route.
"""

import logging
from typing import AsyncIterator, Dict

from .base import HTTPProviderAdapter
from ..core.config import AzureFoundryConfig
from ..core.streaming import SSETranscoder, anthropic_event_to_choice
from ..models.request import ChatRequest
from ..models.response import ChatResponse

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
ANTHROPIC_MODEL_PREFIXES = ("claude",)


def is_anthropic_model(model: str) -> bool:
    """Case-insensitive prefix check for Anthropic-wire models."""
    return model.lower().startswith(ANTHROPIC_MODEL_PREFIXES)


class AzureFoundryAdapter(HTTPProviderAdapter):
    """
    Azure AI Foundry adapter.

    With `force_anthropic` every model is sent over the Anthropic wire,
    which is how `anthropic/` routed requests are served.
    """

    provider_name = "azure-foundry"
    label = "Azure AI Foundry"

    def __init__(self, config: AzureFoundryConfig, force_anthropic: bool = False, **kwargs):
        super().__init__(config, **kwargs)
        self._endpoint = config.endpoint.rstrip("/")
        self._force_anthropic = force_anthropic

    def uses_anthropic_wire(self, model: str) -> bool:
        return self._force_anthropic or is_anthropic_model(model)

    def _openai_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_key}",
        }

    def _anthropic_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    @property
    def openai_url(self) -> str:
        return f"{self._endpoint}/models/chat/completions"

    @property
    def anthropic_url(self) -> str:
        return f"{self._endpoint}/anthropic/v1/messages"

    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        model = request.model or self._config.model

        if self.uses_anthropic_wire(model):
            logger.debug(f"Routing {model} to the Anthropic endpoint")
            data = await self._post_json(
                self.anthropic_url,
                request.to_anthropic_format(model=model, stream=False),
                self._anthropic_headers(),
            )
            return ChatResponse.from_anthropic(data, model=model)

        data = await self._post_json(
            self.openai_url,
            request.to_openai_format(model=model, stream=False),
            self._openai_headers(),
        )
        return ChatResponse.from_openai(data, model=model)

    async def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[bytes]:
        model = request.model or self._config.model

        if self.uses_anthropic_wire(model):
            response = await self._open_stream(
                self.anthropic_url,
                request.to_anthropic_format(model=model, stream=True),
                self._anthropic_headers(),
            )
            return self._stream_body(response, SSETranscoder(anthropic_event_to_choice, model))

        response = await self._open_stream(
            self.openai_url,
            request.to_openai_format(model=model, stream=True),
            self._openai_headers(),
        )
        return self._stream_body(response)
