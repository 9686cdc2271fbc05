"""
Shared fixtures for the edge gateway tests.

Upstreams are simulated with httpx.MockTransport; each fixture records
the requests it receives so tests can assert on URLs, headers and bodies.
"""
import json
from typing import Callable, List

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from edge_gateway.models.request import ChatRequest


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it handled."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


def openai_completion(content: str = "Hello!", model: str = "gpt-4o-mini", finish_reason: str = "stop") -> dict:
    """A minimal OpenAI chat completion body."""
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": finish_reason,
            }
        ],
        "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
    }


def anthropic_message(text: str = "Hi there", stop_reason: str = "end_turn") -> dict:
    """A minimal Anthropic Messages API body."""
    return {
        "id": "msg_test",
        "type": "message",
        "role": "assistant",
        "model": "claude-3-5-sonnet",
        "content": [{"type": "text", "text": text}],
        "stop_reason": stop_reason,
        "usage": {"input_tokens": 10, "output_tokens": 4},
    }


@pytest.fixture
def make_client():
    """Build an AsyncClient over a RecordingTransport."""
    def _make(handler: Callable[[httpx.Request], httpx.Response]):
        transport = RecordingTransport(handler)
        return httpx.AsyncClient(transport=transport), transport
    return _make


@pytest.fixture
def simple_request():
    """A request with only the required field set."""
    return ChatRequest(messages=[{"role": "user", "content": "hi"}])


@pytest.fixture(scope="session")
def rsa_private_key():
    """RSA key for signing service-account assertions."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def service_account_json(rsa_private_key):
    """Service-account JSON holding the test key."""
    pem = rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    return json.dumps({
        "type": "service_account",
        "project_id": "test-project",
        "client_email": "gateway@test-project.iam.gserviceaccount.com",
        "private_key": pem,
        "token_uri": "https://oauth2.googleapis.com/token",
    })
