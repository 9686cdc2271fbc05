"""
Edge AI Gateway HTTP service.

Exposes one OpenAI-compatible chat completions endpoint and dispatches
each request to the configured (or prefix-selected) upstream provider.
"""
import os
import hmac
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pydantic import ValidationError

from ..core.config import GatewayConfig, load_config
from ..core.errors import GatewayAuthenticationError, GatewayError, GatewayInvalidRequestError
from ..core.registry import ProviderRegistry
from ..models.request import ChatRequest
from ..models.response import ChatResponse

logger = logging.getLogger(__name__)

SERVICE_NAME = "edge-gateway"

security = HTTPBearer(auto_error=False)


def setup_tracing() -> None:
    """Install an OTLP-exporting tracer provider when an endpoint is configured."""
    otel_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not otel_endpoint:
        return
    resource = Resource.create({"service.name": SERVICE_NAME})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otel_endpoint)))
    trace.set_tracer_provider(provider)
    logger.info(f"Exporting traces to {otel_endpoint}")


def create_app(
    config: Optional[GatewayConfig] = None,
    registry: Optional[ProviderRegistry] = None,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        config: Gateway configuration (loaded from file/environment if None)
        registry: Provider registry (built from config if None)
    """
    if registry is None:
        registry = ProviderRegistry(config or load_config())
    config = registry.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info(f"Edge gateway starting, default provider: {config.default_provider.value}")
        yield
        await registry.disconnect_all()

    app = FastAPI(
        title="Edge AI Gateway",
        description="OpenAI-compatible chat completions across multiple AI providers",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.registry = registry

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins or ["*"],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    FastAPIInstrumentor.instrument_app(app)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        if exc.status >= 500:
            logger.warning(f"Request failed: {exc!r}")
        return JSONResponse(status_code=exc.status, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error: {exc}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    async def verify_client_key(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    ) -> None:
        """Check the client bearer key when one is configured."""
        if not config.client_api_key:
            return
        if credentials is None or not hmac.compare_digest(
            credentials.credentials.encode(), config.client_api_key.encode()
        ):
            raise GatewayAuthenticationError("Unauthorized")

    async def chat_completions(request: Request, _: None = Depends(verify_client_key)):
        """Create a chat completion (streaming or not)."""
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise GatewayInvalidRequestError("Request body must be valid JSON")

        try:
            chat_request = ChatRequest.model_validate(body)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()
            )
            raise GatewayInvalidRequestError(f"Invalid request: {details}")

        result = await registry.dispatch(chat_request)
        if isinstance(result, ChatResponse):
            return JSONResponse(content=result.model_dump(mode="json"))

        return StreamingResponse(
            result,
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    app.add_api_route("/v1/chat/completions", chat_completions, methods=["POST"])
    app.add_api_route("/", chat_completions, methods=["POST"], include_in_schema=False)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "default_provider": config.default_provider.value}

    return app


setup_tracing()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8080")))
