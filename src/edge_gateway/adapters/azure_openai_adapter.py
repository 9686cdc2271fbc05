"""
Azure OpenAI Service adapter.

The deployment carries the model, so the request body omits `model`.
Only a model routed with the `azure/` prefix selects the deployment;
otherwise the configured one is used.
"""

from typing import AsyncIterator, Dict

from .base import HTTPProviderAdapter
from ..core.config import AzureConfig
from ..models.request import ChatRequest
from ..models.response import ChatResponse


class AzureOpenAIAdapter(HTTPProviderAdapter):
    """
    Azure OpenAI Service adapter.

    Supports deployment-based routing and API versions.
    """

    provider_name = "azure"
    label = "Azure OpenAI"

    def __init__(self, config: AzureConfig, deployment_from_model: bool = False, **kwargs):
        super().__init__(config, **kwargs)
        self._endpoint = config.endpoint.rstrip("/")
        self._deployment_from_model = deployment_from_model

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "api-key": self._config.api_key,
        }

    def build_url(self, deployment: str) -> str:
        """Build Azure OpenAI chat completions URL."""
        return (
            f"{self._endpoint}/openai/deployments/{deployment}/"
            f"chat/completions?api-version={self._config.api_version}"
        )

    def _deployment(self, request: ChatRequest) -> str:
        if self._deployment_from_model and request.model:
            return request.model
        return self._config.deployment

    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        """Execute chat completion request."""
        deployment = self._deployment(request)
        data = await self._post_json(
            self.build_url(deployment),
            request.to_openai_format(model=deployment, stream=False, include_model=False),
            self._headers(),
        )
        return ChatResponse.from_openai(data, model=deployment)

    async def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[bytes]:
        """Execute streaming chat completion request."""
        deployment = self._deployment(request)
        response = await self._open_stream(
            self.build_url(deployment),
            request.to_openai_format(model=deployment, stream=True, include_model=False),
            self._headers(),
        )
        return self._stream_body(response)
