"""
Cloudflare Workers AI adapter.

Success is reported by a `success` flag in the body, independent of the
HTTP status; a 200 with `success: false` is still a provider failure.
No streaming.
"""

from typing import Any, Dict

from .base import HTTPProviderAdapter
from ..core.config import CloudflareConfig
from ..core.errors import GatewayProviderError
from ..models.request import ChatRequest
from ..models.response import ChatResponse

CLOUDFLARE_API_URL = "https://api.cloudflare.com/client/v4"


class CloudflareAdapter(HTTPProviderAdapter):
    """Cloudflare Workers AI adapter."""

    provider_name = "cloudflare"
    label = "Cloudflare AI"
    supports_streaming = False

    def __init__(self, config: CloudflareConfig, base_url: str = CLOUDFLARE_API_URL, **kwargs):
        super().__init__(config, **kwargs)
        self._base_url = base_url.rstrip("/")

    def build_url(self, model: str) -> str:
        return f"{self._base_url}/accounts/{self._config.account_id}/ai/run/{model}"

    def _build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "messages": [m.to_wire() for m in request.messages],
        }
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        return payload

    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        model = request.model or self._config.model
        data = await self._post_json(
            self.build_url(model),
            self._build_payload(request),
            {
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._config.api_token}",
            },
        )

        if not data.get("success"):
            messages = [e.get("message", "") for e in data.get("errors") or [] if isinstance(e, dict)]
            raise GatewayProviderError(
                f"{self.label} error: {', '.join(m for m in messages if m) or 'Unknown error'}",
                provider=self.name,
                raw=data,
            )

        content = (data.get("result") or {}).get("response")
        if not content:
            raise GatewayProviderError(
                f"{self.label} returned empty response",
                provider=self.name,
                raw=data,
            )

        return ChatResponse.from_text(content, model=model)
