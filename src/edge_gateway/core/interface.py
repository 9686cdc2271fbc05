"""
Abstract provider interface definition.

Defines the contract that all provider adapters must implement.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Set
from enum import Enum

from .errors import GatewayInvalidRequestError
from ..models.request import ChatRequest
from ..models.response import ChatResponse


class ProviderCapability(str, Enum):
    """Capabilities that a provider may support."""
    CHAT_COMPLETION = "chat_completion"
    STREAMING = "streaming"
    VISION = "vision"


class AbstractProvider(ABC):
    """
    Abstract base class for upstream provider adapters.

    An adapter is built from one immutable provider config and translates
    canonical requests/responses to and from a single upstream wire format.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Provider name used in errors and logs.

        Returns:
            Provider name (e.g., "azure", "vertex")
        """
        pass

    @property
    @abstractmethod
    def capabilities(self) -> Set[ProviderCapability]:
        """
        Set of capabilities this provider supports.

        Returns:
            Set of ProviderCapability values
        """
        pass

    @property
    def is_connected(self) -> bool:
        return True

    async def connect(self) -> None:
        """Prepare the adapter for use."""

    async def disconnect(self) -> None:
        """Release adapter resources."""

    @abstractmethod
    async def chat_completion(self, request: ChatRequest) -> ChatResponse:
        """
        Create a chat completion.

        Args:
            request: Canonical chat request

        Returns:
            Canonical chat response

        Raises:
            GatewayError: On any upstream or configuration failure
        """
        pass

    async def chat_completion_stream(self, request: ChatRequest) -> AsyncIterator[bytes]:
        """
        Open a streaming chat completion.

        The upstream call is made and checked before this returns, so HTTP
        failures raise here rather than mid-stream.

        Returns:
            Async iterator of canonical SSE bytes ending with `data: [DONE]`
        """
        raise GatewayInvalidRequestError(
            f"Streaming is not supported by {self.name}",
            provider=self.name,
        )

    def supports(self, capability: ProviderCapability) -> bool:
        """
        Check if provider supports a capability.

        Args:
            capability: Capability to check

        Returns:
            True if supported
        """
        return capability in self.capabilities

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
