"""
Canonical request/response models.
"""

from .request import ChatRequest, Message, ContentPart, ImageURL
from .response import (
    ChatResponse,
    ChatCompletionChunk,
    Choice,
    StreamChoice,
    StreamDelta,
    Usage,
    FinishReason,
)

__all__ = [
    "ChatRequest",
    "Message",
    "ContentPart",
    "ImageURL",
    "ChatResponse",
    "ChatCompletionChunk",
    "Choice",
    "StreamChoice",
    "StreamDelta",
    "Usage",
    "FinishReason",
]
