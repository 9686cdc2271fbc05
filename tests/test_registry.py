"""
Tests for provider resolution and dispatch.
"""
import httpx
import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from conftest import anthropic_message, openai_completion
from edge_gateway.adapters import AzureFoundryAdapter, CloudflareAdapter, OpenAIAdapter
from edge_gateway.core import registry as registry_module
from edge_gateway.core.config import GatewayConfig, ProviderType
from edge_gateway.core.errors import ErrorCode, GatewayConfigError, GatewayRateLimitError
from edge_gateway.core.registry import ProviderRegistry, parse_model_prefix

AZURE_SETTINGS = {
    "endpoint": "https://res.openai.azure.com",
    "api_key": "az-key",
    "deployment": "prod-gpt4o",
}


@pytest.fixture
def span_exporter(monkeypatch):
    """Route dispatch spans to an in-memory exporter."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(registry_module, "tracer", provider.get_tracer("test"))
    return exporter
from edge_gateway.models.request import ChatRequest
from edge_gateway.models.response import FINISH_REASON_VALUES, ChatResponse


def make_request(model=None, **kwargs):
    return ChatRequest(model=model, messages=[{"role": "user", "content": "hi"}], **kwargs)


class TestPrefixParsing:
    """Test model prefix detection."""

    @pytest.mark.parametrize("model,expected", [
        ("openai/gpt-4o-mini", ("openai", "gpt-4o-mini")),
        ("Gemini/gemini-1.5-pro", ("gemini", "gemini-1.5-pro")),
        ("vertex-claude/claude-3-opus@20240229", ("vertex-claude", "claude-3-opus@20240229")),
        ("cloudflare/@cf/meta/llama-3-8b", ("cloudflare", "@cf/meta/llama-3-8b")),
    ])
    def test_known_prefixes(self, model, expected):
        """Known prefixes are split off (case-insensitive)."""
        assert parse_model_prefix(model) == expected

    @pytest.mark.parametrize("model", [None, "gpt-4o", "@cf/meta/llama-3-8b", "meta-llama/Llama-3", "openai/"])
    def test_no_prefix(self, model):
        """Unknown or missing prefixes are not split."""
        assert parse_model_prefix(model) is None


class TestResolve:
    """Test route resolution."""

    def test_prefix_overrides_default(self):
        """openai/gpt-4o-mini routes to OpenAI with the prefix stripped."""
        config = GatewayConfig(
            default_provider=ProviderType.CLOUDFLARE,
            providers={ProviderType.OPENAI: {"api_key": "sk-test"}},
        )
        registry = ProviderRegistry(config)

        route = registry.resolve(make_request("openai/gpt-4o-mini"))

        assert route.provider == ProviderType.OPENAI
        assert route.model == "gpt-4o-mini"
        assert isinstance(registry.get_adapter(route), OpenAIAdapter)

    def test_unknown_prefix_uses_default(self):
        """Models without a known prefix go to the default unchanged."""
        registry = ProviderRegistry(GatewayConfig(default_provider=ProviderType.CLOUDFLARE))
        route = registry.resolve(make_request("@cf/meta/llama-3-8b"))
        assert route.provider == ProviderType.CLOUDFLARE
        assert route.model == "@cf/meta/llama-3-8b"

    def test_anthropic_prefix_forces_anthropic_wire(self):
        """anthropic/ goes to Foundry on the Anthropic wire."""
        config = GatewayConfig(providers={
            ProviderType.AZURE_FOUNDRY: {"endpoint": "https://f.example.com", "api_key": "k"},
        })
        registry = ProviderRegistry(config)

        route = registry.resolve(make_request("anthropic/my-deployment"))
        adapter = registry.get_adapter(route)

        assert isinstance(adapter, AzureFoundryAdapter)
        assert adapter.uses_anthropic_wire("my-deployment")
        plain = registry.get_adapter(registry.resolve(make_request("foundry/my-deployment")))
        assert plain is not adapter
        assert not plain.uses_anthropic_wire("my-deployment")

    def test_adapters_are_reused(self):
        """Adapters are built once per route kind."""
        config = GatewayConfig(providers={ProviderType.OPENAI: {"api_key": "sk-test"}})
        registry = ProviderRegistry(config)
        first = registry.get_adapter(registry.resolve(make_request("gpt-4o")))
        second = registry.get_adapter(registry.resolve(make_request("openai/gpt-4o-mini")))
        assert first is second

    def test_unconfigured_provider_is_config_error(self):
        """Selecting a provider without credentials fails with CONFIG_ERROR."""
        registry = ProviderRegistry(GatewayConfig(default_provider=ProviderType.CLOUDFLARE))
        with pytest.raises(GatewayConfigError) as exc_info:
            registry.get_adapter(registry.resolve(make_request("openai/gpt-4o-mini")))
        assert exc_info.value.code == ErrorCode.CONFIG_ERROR
        assert exc_info.value.status == 400

    def test_vertex_adapters_share_token_manager(self, service_account_json):
        """Vertex and Vertex Claude reuse one token cache per key."""
        config = GatewayConfig(providers={
            ProviderType.VERTEX: {"project_id": "p", "service_account_json": service_account_json},
            ProviderType.VERTEX_CLAUDE: {"project_id": "p", "service_account_json": service_account_json},
        })
        registry = ProviderRegistry(config)
        gemini = registry.get_adapter(registry.resolve(make_request("gemini/gemini-2.0-flash")))
        claude = registry.get_adapter(registry.resolve(make_request("vertex-claude/claude-3-haiku")))
        assert gemini._token_manager is claude._token_manager


class TestDispatch:
    """Test end-to-end dispatch against simulated upstreams."""

    @pytest.mark.asyncio
    async def test_end_to_end_openai(self, make_client):
        """A plain request returns an assistant message with a known finish reason."""
        client, transport = make_client(lambda r: httpx.Response(200, json=openai_completion()))
        config = GatewayConfig(providers={ProviderType.OPENAI: {"api_key": "sk-test"}})
        registry = ProviderRegistry(config, http_client=client)

        response = await registry.dispatch(make_request())

        assert isinstance(response, ChatResponse)
        assert response.choices[0].message.role == "assistant"
        assert response.choices[0].finish_reason.value in FINISH_REASON_VALUES
        assert transport.last_json["model"] == "gpt-4o"

    @pytest.mark.asyncio
    async def test_prefix_stripped_before_forwarding(self, make_client):
        """The upstream sees the model without its prefix."""
        client, transport = make_client(lambda r: httpx.Response(200, json=openai_completion()))
        config = GatewayConfig(
            default_provider=ProviderType.AZURE,
            providers={ProviderType.OPENAI: {"api_key": "sk-test"}},
        )
        registry = ProviderRegistry(config, http_client=client)

        await registry.chat(make_request("openai/gpt-4o-mini"))

        assert transport.last_json["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_non_streaming_provider_falls_back(self, make_client):
        """stream=true against Cloudflare returns a ChatResponse."""
        client, _ = make_client(lambda r: httpx.Response(200, json={"success": True, "result": {"response": "hi"}}))
        config = GatewayConfig(
            default_provider=ProviderType.CLOUDFLARE,
            providers={ProviderType.CLOUDFLARE: {"account_id": "a", "api_token": "t"}},
        )
        registry = ProviderRegistry(config, http_client=client)

        result = await registry.dispatch(make_request(stream=True))

        assert isinstance(result, ChatResponse)
        assert isinstance(registry.get_adapter(registry.resolve(make_request())), CloudflareAdapter)

    @pytest.mark.asyncio
    async def test_streaming_dispatch(self, make_client):
        """Streaming requests return an async byte iterator."""
        upstream = (
            b'data: {"type":"content_block_delta","delta":{"text":"yo"}}\n\n'
            b'data: {"type":"message_stop"}\n\n'
        )
        client, _ = make_client(lambda r: httpx.Response(200, content=upstream))
        config = GatewayConfig(providers={
            ProviderType.AZURE_FOUNDRY: {"endpoint": "https://f.example.com", "api_key": "k"},
        })
        registry = ProviderRegistry(config, http_client=client)

        result = await registry.dispatch(make_request("anthropic/claude-3-haiku", stream=True))
        events = [chunk async for chunk in result]

        assert len(events) == 3
        assert events[-1] == b"data: [DONE]\n\n"

    @pytest.mark.asyncio
    async def test_anthropic_finish_reason(self, make_client):
        """max_tokens from the Anthropic wire surfaces as length."""
        client, _ = make_client(lambda r: httpx.Response(200, json=anthropic_message(stop_reason="max_tokens")))
        config = GatewayConfig(providers={
            ProviderType.AZURE_FOUNDRY: {"endpoint": "https://f.example.com", "api_key": "k"},
        })
        registry = ProviderRegistry(config, http_client=client)

        response = await registry.chat(make_request("foundry/claude-3-5-sonnet"))

        assert response.choices[0].finish_reason.value == "length"

    @pytest.mark.asyncio
    async def test_disconnect_all(self):
        """disconnect_all closes owned clients and forgets adapters."""
        config = GatewayConfig(providers={ProviderType.OPENAI: {"api_key": "sk-test"}})
        registry = ProviderRegistry(config)
        adapter = registry.get_adapter(registry.resolve(make_request()))
        await adapter.connect()
        assert adapter.is_connected

        await registry.disconnect_all()

        assert not adapter.is_connected


class TestAzureDeployment:
    """Test how the Azure deployment is chosen."""

    @pytest.mark.asyncio
    async def test_default_azure_keeps_configured_deployment(self, make_client):
        """An unprefixed model on an Azure default uses the configured deployment."""
        client, transport = make_client(lambda r: httpx.Response(200, json=openai_completion()))
        config = GatewayConfig(
            default_provider=ProviderType.AZURE,
            providers={ProviderType.AZURE: AZURE_SETTINGS},
        )
        registry = ProviderRegistry(config, http_client=client)

        await registry.chat(make_request("gpt-4o"))

        assert "/deployments/prod-gpt4o/" in str(transport.requests[0].url)

    @pytest.mark.asyncio
    async def test_azure_prefix_selects_deployment(self, make_client):
        """azure/<name> picks that deployment."""
        client, transport = make_client(lambda r: httpx.Response(200, json=openai_completion()))
        config = GatewayConfig(
            default_provider=ProviderType.OPENAI,
            providers={ProviderType.AZURE: AZURE_SETTINGS},
        )
        registry = ProviderRegistry(config, http_client=client)

        await registry.chat(make_request("azure/gpt4o-canary"))

        assert "/deployments/gpt4o-canary/" in str(transport.requests[0].url)


class TestDispatchSpans:
    """Test tracing around dispatch."""

    @pytest.mark.asyncio
    async def test_chat_span(self, make_client, span_exporter):
        """Non-streaming calls record one gateway.chat span."""
        client, _ = make_client(lambda r: httpx.Response(200, json=openai_completion()))
        config = GatewayConfig(providers={ProviderType.OPENAI: {"api_key": "sk-test"}})
        registry = ProviderRegistry(config, http_client=client)

        await registry.chat(make_request("openai/gpt-4o-mini"))

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "gateway.chat"
        assert span.attributes["gateway.provider"] == "openai"
        assert span.attributes["gateway.model"] == "gpt-4o-mini"
        assert span.attributes["gateway.stream"] is False

    @pytest.mark.asyncio
    async def test_stream_span_covers_whole_stream(self, make_client, span_exporter):
        """The stream span ends only once the stream has been consumed."""
        upstream = b'data: {"type":"content_block_delta","delta":{"text":"yo"}}\n\n'
        client, _ = make_client(lambda r: httpx.Response(200, content=upstream))
        config = GatewayConfig(providers={
            ProviderType.AZURE_FOUNDRY: {"endpoint": "https://f.example.com", "api_key": "k"},
        })
        registry = ProviderRegistry(config, http_client=client)

        stream = await registry.chat_stream(make_request("anthropic/claude-3-haiku", stream=True))
        assert span_exporter.get_finished_spans() == ()

        events = [chunk async for chunk in stream]

        assert events[-1] == b"data: [DONE]\n\n"
        (span,) = span_exporter.get_finished_spans()
        assert span.name == "gateway.chat_stream"
        assert span.attributes["gateway.stream"] is True

    @pytest.mark.asyncio
    async def test_stream_span_ends_on_early_close(self, make_client, span_exporter):
        """Closing the stream early still ends the span."""
        upstream = b'data: {"type":"content_block_delta","delta":{"text":"yo"}}\n\n' * 5
        client, _ = make_client(lambda r: httpx.Response(200, content=upstream))
        config = GatewayConfig(providers={
            ProviderType.AZURE_FOUNDRY: {"endpoint": "https://f.example.com", "api_key": "k"},
        })
        registry = ProviderRegistry(config, http_client=client)

        stream = await registry.chat_stream(make_request("anthropic/claude-3-haiku", stream=True))
        await stream.__anext__()
        await stream.aclose()

        assert len(span_exporter.get_finished_spans()) == 1

    @pytest.mark.asyncio
    async def test_stream_span_ends_when_open_fails(self, make_client, span_exporter):
        """An upstream failure before the body still ends the span."""
        client, _ = make_client(lambda r: httpx.Response(429, json={"error": "slow down"}))
        config = GatewayConfig(providers={ProviderType.OPENAI: {"api_key": "sk-test"}})
        registry = ProviderRegistry(config, http_client=client)

        with pytest.raises(GatewayRateLimitError):
            await registry.chat_stream(make_request(stream=True))

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "gateway.chat_stream"
