"""
Provider registry and request dispatch.

Picks the adapter for a request (configured default, or a `provider/model`
prefix on the model name), builds it lazily from configuration and
invokes it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Tuple, Type, Union

import httpx
from opentelemetry import trace

from .config import GatewayConfig, ProviderType
from .credentials import ServiceAccountTokenManager
from .interface import AbstractProvider, ProviderCapability
from ..models.request import ChatRequest
from ..models.response import ChatResponse

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# model prefix -> (provider, adapter options)
PREFIX_ROUTES: Dict[str, Tuple[ProviderType, Dict[str, Any]]] = {
    "gemini": (ProviderType.VERTEX, {}),
    "vertex": (ProviderType.VERTEX, {}),
    "azure": (ProviderType.AZURE, {"deployment_from_model": True}),
    "foundry": (ProviderType.AZURE_FOUNDRY, {}),
    "openai": (ProviderType.OPENAI, {}),
    "cloudflare": (ProviderType.CLOUDFLARE, {}),
    "vertex-claude": (ProviderType.VERTEX_CLAUDE, {}),
    "anthropic": (ProviderType.AZURE_FOUNDRY, {"force_anthropic": True}),
}


@dataclass(frozen=True)
class Route:
    """Resolved dispatch target for one request."""
    provider: ProviderType
    model: Optional[str]
    prefix: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def key(self) -> Tuple[ProviderType, Tuple[Tuple[str, Any], ...]]:
        return self.provider, tuple(sorted(self.options.items()))


def parse_model_prefix(model: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Split `<prefix>/<model>` when the prefix is a known provider.

    Returns:
        (lower-cased prefix, model) or None
    """
    if not model or "/" not in model:
        return None
    prefix, rest = model.split("/", 1)
    prefix = prefix.strip().lower()
    if prefix in PREFIX_ROUTES and rest:
        return prefix, rest
    return None


def _default_adapters() -> Dict[ProviderType, Type[AbstractProvider]]:
    from ..adapters import (
        AzureFoundryAdapter,
        AzureOpenAIAdapter,
        CloudflareAdapter,
        OpenAIAdapter,
        VertexAIAdapter,
        VertexClaudeAdapter,
    )
    return {
        ProviderType.AZURE: AzureOpenAIAdapter,
        ProviderType.AZURE_FOUNDRY: AzureFoundryAdapter,
        ProviderType.OPENAI: OpenAIAdapter,
        ProviderType.CLOUDFLARE: CloudflareAdapter,
        ProviderType.VERTEX: VertexAIAdapter,
        ProviderType.VERTEX_CLAUDE: VertexClaudeAdapter,
    }


class ProviderRegistry:
    """
    Registry for provider adapters.

    Adapter instances are created on first use and reused afterwards.
    Service-account token managers are shared between adapters that use
    the same key.
    """

    def __init__(
        self,
        config: GatewayConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        """
        Initialize the registry.

        Args:
            config: Gateway configuration
            http_client: Optional shared HTTP client handed to every adapter
            timeout: Upstream request timeout in seconds
        """
        self._config = config
        self._http_client = http_client
        self._timeout = timeout
        self._adapters: Dict[ProviderType, Type[AbstractProvider]] = _default_adapters()
        self._instances: Dict[Tuple, AbstractProvider] = {}
        self._token_managers: Dict[str, ServiceAccountTokenManager] = {}

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def register_adapter(
        self,
        provider: ProviderType,
        adapter_class: Type[AbstractProvider],
    ) -> None:
        """
        Register (or replace) the adapter class for a provider kind.

        Args:
            provider: Provider kind
            adapter_class: Adapter class to register
        """
        self._adapters[provider] = adapter_class
        for key in [k for k in self._instances if k[0] == provider]:
            del self._instances[key]
        logger.info(f"Registered provider adapter: {provider.value}")

    def resolve(self, request: ChatRequest) -> Route:
        """
        Resolve the route for a request.

        A known `<prefix>/` on the model overrides the default provider for
        this request and is stripped before forwarding.
        """
        parsed = parse_model_prefix(request.model)
        if parsed:
            prefix, model = parsed
            provider, options = PREFIX_ROUTES[prefix]
            logger.debug(f"Model prefix '{prefix}' overrides default provider -> {provider.value}")
            return Route(provider=provider, model=model, prefix=prefix, options=options)
        return Route(provider=self._config.default_provider, model=request.model)

    def _token_manager(self, service_account_json: str, provider: str) -> ServiceAccountTokenManager:
        manager = self._token_managers.get(service_account_json)
        if manager is None:
            manager = ServiceAccountTokenManager(
                service_account_json,
                http_client=self._http_client,
                provider=provider,
            )
            self._token_managers[service_account_json] = manager
        return manager

    def get_adapter(self, route: Route) -> AbstractProvider:
        """
        Get (building if needed) the adapter for a route.

        Raises:
            GatewayConfigError: If the provider is not configured
        """
        instance = self._instances.get(route.key)
        if instance is not None:
            return instance

        provider_config = self._config.provider_config(route.provider)
        kwargs: Dict[str, Any] = dict(route.options)
        kwargs["timeout"] = self._timeout
        if self._http_client is not None:
            kwargs["http_client"] = self._http_client

        service_account_json = getattr(provider_config, "service_account_json", None)
        if service_account_json and getattr(provider_config, "project_id", None):
            kwargs["token_manager"] = self._token_manager(service_account_json, route.provider.value)

        instance = self._adapters[route.provider](provider_config, **kwargs)
        self._instances[route.key] = instance
        logger.info(f"Created provider adapter: {instance!r}")
        return instance

    def _prepare(self, request: ChatRequest) -> Tuple[AbstractProvider, ChatRequest]:
        route = self.resolve(request)
        adapter = self.get_adapter(route)
        if route.model != request.model:
            request = request.model_copy(update={"model": route.model})
        return adapter, request

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Dispatch a non-streaming chat completion."""
        adapter, request = self._prepare(request)
        with tracer.start_as_current_span("gateway.chat") as span:
            span.set_attribute("gateway.provider", adapter.name)
            span.set_attribute("gateway.model", request.model or "")
            span.set_attribute("gateway.stream", False)
            return await adapter.chat_completion(request)

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[bytes]:
        """
        Dispatch a streaming chat completion and return the canonical SSE byte stream.

        The `gateway.chat_stream` span stays open until the stream is
        exhausted or closed.
        """
        adapter, request = self._prepare(request)
        span = tracer.start_span("gateway.chat_stream")
        span.set_attribute("gateway.provider", adapter.name)
        span.set_attribute("gateway.model", request.model or "")
        span.set_attribute("gateway.stream", True)

        try:
            with trace.use_span(span, end_on_exit=False):
                stream = await adapter.chat_completion_stream(request)
        except Exception:
            span.end()
            raise
        return self._traced_stream(stream, span)

    @staticmethod
    async def _traced_stream(stream: AsyncIterator[bytes], span: trace.Span) -> AsyncIterator[bytes]:
        try:
            async for chunk in stream:
                yield chunk
        except Exception as e:
            span.record_exception(e)
            span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
            raise
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
            span.end()

    async def dispatch(self, request: ChatRequest) -> Union[ChatResponse, AsyncIterator[bytes]]:
        """
        Serve a request as the inbound contract describes.

        Returns a byte stream when streaming was requested and the resolved
        provider supports it, otherwise a ChatResponse.
        """
        if request.stream:
            adapter = self.get_adapter(self.resolve(request))
            if adapter.supports(ProviderCapability.STREAMING):
                return await self.chat_stream(request)
            logger.info(f"{adapter.name} does not stream; serving a single response")
        return await self.chat(request)

    async def disconnect_all(self) -> None:
        """Disconnect all adapters and token managers."""
        for adapter in self._instances.values():
            try:
                await adapter.disconnect()
            except Exception as e:
                logger.error(f"Failed to disconnect provider {adapter.name}: {e}")
        for manager in self._token_managers.values():
            await manager.aclose()
        self._instances.clear()
        self._token_managers.clear()
