"""
Provider adapters for the supported upstreams.
"""

from .base import HTTPProviderAdapter
from .openai_adapter import OpenAIAdapter
from .azure_openai_adapter import AzureOpenAIAdapter
from .azure_foundry_adapter import AzureFoundryAdapter
from .cloudflare_adapter import CloudflareAdapter
from .vertex_ai_adapter import VertexAIAdapter, VertexClaudeAdapter

__all__ = [
    "HTTPProviderAdapter",
    "OpenAIAdapter",
    "AzureOpenAIAdapter",
    "AzureFoundryAdapter",
    "CloudflareAdapter",
    "VertexAIAdapter",
    "VertexClaudeAdapter",
]
