"""
Edge AI Gateway

One OpenAI-compatible chat completions contract in front of several
upstream providers:
- Azure OpenAI, Azure AI Foundry, OpenAI, Cloudflare Workers AI
- Gemini / Vertex AI (API key or service account) and Claude on Vertex
- Streaming responses normalized to OpenAI-style SSE chunks
- Per-request provider override with a `provider/model` prefix
"""

from .core.interface import AbstractProvider, ProviderCapability
from .core.registry import ProviderRegistry
from .core.config import GatewayConfig, ProviderType, load_config
from .core.errors import ErrorCode, GatewayError
from .models.request import ChatRequest, Message
from .models.response import ChatResponse, ChatCompletionChunk, Choice, Usage

__version__ = "0.1.0"

__all__ = [
    "AbstractProvider",
    "ProviderCapability",
    "ProviderRegistry",
    "GatewayConfig",
    "ProviderType",
    "load_config",
    "ErrorCode",
    "GatewayError",
    "ChatRequest",
    "ChatResponse",
    "ChatCompletionChunk",
    "Message",
    "Choice",
    "Usage",
]
