"""
Canonical response models.

ChatResponse mirrors the OpenAI chat-completion body; ChatCompletionChunk
mirrors one streamed SSE event.
"""

import json
import time
import uuid
from enum import Enum
from typing import Optional, List, Dict, Any, Literal

from pydantic import BaseModel, Field, model_validator


class FinishReason(str, Enum):
    """Reasons for completion finishing."""
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    TOOL_CALLS = "tool_calls"
    FUNCTION_CALL = "function_call"


FINISH_REASON_VALUES = {reason.value for reason in FinishReason}

ANTHROPIC_STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "max_tokens": FinishReason.LENGTH,
}

GEMINI_FINISH_REASONS = {
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.LENGTH,
    "SAFETY": FinishReason.CONTENT_FILTER,
    "RECITATION": FinishReason.CONTENT_FILTER,
    "BLOCKLIST": FinishReason.CONTENT_FILTER,
    "PROHIBITED_CONTENT": FinishReason.CONTENT_FILTER,
    "SPII": FinishReason.CONTENT_FILTER,
}


def map_anthropic_stop_reason(stop_reason: Optional[str]) -> FinishReason:
    """Map an Anthropic stop_reason; unknown values fall back to stop."""
    return ANTHROPIC_STOP_REASONS.get(stop_reason or "", FinishReason.STOP)


def map_gemini_finish_reason(finish_reason: Optional[str]) -> FinishReason:
    return GEMINI_FINISH_REASONS.get(finish_reason or "", FinishReason.STOP)


def generate_id() -> str:
    """Generate a chat completion id."""
    return f"chatcmpl-{uuid.uuid4().hex[:24]}"


def current_timestamp() -> int:
    """Seconds since epoch."""
    return int(time.time())


class Usage(BaseModel):
    """Token usage information."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @model_validator(mode="after")
    def _check_total(self) -> "Usage":
        # total is always prompt + completion
        self.total_tokens = self.prompt_tokens + self.completion_tokens
        return self


class ResponseMessage(BaseModel):
    """Message in response."""
    role: Literal["assistant"] = "assistant"
    content: Optional[str] = None


class Choice(BaseModel):
    """A single completion choice."""
    index: int = 0
    message: ResponseMessage
    finish_reason: Optional[FinishReason] = None


class ChatResponse(BaseModel):
    """
    Unified chat completion response.

    Compatible with OpenAI API format.
    """
    id: str = Field(default_factory=generate_id)
    object: Literal["chat.completion"] = "chat.completion"
    created: int = Field(default_factory=current_timestamp)
    model: str = ""
    choices: List[Choice] = Field(default_factory=list)
    usage: Optional[Usage] = None

    @classmethod
    def from_text(
        cls,
        content: Optional[str],
        model: str,
        finish_reason: FinishReason = FinishReason.STOP,
        usage: Optional[Usage] = None,
        response_id: Optional[str] = None,
    ) -> "ChatResponse":
        """Build a single-choice response."""
        return cls(
            id=response_id or generate_id(),
            model=model,
            choices=[Choice(
                index=0,
                message=ResponseMessage(content=content),
                finish_reason=finish_reason,
            )],
            usage=usage,
        )

    @classmethod
    def from_openai(cls, data: Dict[str, Any], model: str = "") -> "ChatResponse":
        """Create from OpenAI API response."""
        choices = []
        for c in data.get("choices") or []:
            message = c.get("message") or {}
            finish_reason = c.get("finish_reason")
            choices.append(Choice(
                index=c.get("index", 0),
                message=ResponseMessage(content=message.get("content")),
                finish_reason=finish_reason if finish_reason in FINISH_REASON_VALUES else None,
            ))

        usage_data = data.get("usage")

        return cls(
            id=data.get("id") or generate_id(),
            created=data.get("created") or current_timestamp(),
            model=data.get("model") or model,
            choices=choices,
            usage=Usage(**usage_data) if usage_data else None,
        )

    @classmethod
    def from_anthropic(cls, data: Dict[str, Any], model: str = "") -> "ChatResponse":
        """Create from Anthropic Messages API response."""
        content = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type", "text") == "text"
        )

        usage_data = data.get("usage") or {}
        input_tokens = usage_data.get("input_tokens", 0)
        output_tokens = usage_data.get("output_tokens", 0)

        return cls.from_text(
            content,
            model=data.get("model") or model,
            finish_reason=map_anthropic_stop_reason(data.get("stop_reason")),
            usage=Usage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
            response_id=data.get("id"),
        )

    @classmethod
    def from_gemini(cls, data: Dict[str, Any], model: str) -> "ChatResponse":
        """Create from Gemini generateContent response."""
        candidates = data.get("candidates") or []
        candidate = candidates[0] if candidates else {}
        parts = (candidate.get("content") or {}).get("parts") or []
        content = "".join(part.get("text", "") for part in parts)

        usage = None
        usage_data = data.get("usageMetadata")
        if usage_data:
            usage = Usage(
                prompt_tokens=usage_data.get("promptTokenCount", 0),
                completion_tokens=usage_data.get("candidatesTokenCount", 0),
            )

        return cls.from_text(
            content,
            model=model,
            finish_reason=map_gemini_finish_reason(candidate.get("finishReason")),
            usage=usage,
        )

    def get_content(self) -> Optional[str]:
        """Get the content from the first choice."""
        if self.choices:
            return self.choices[0].message.content
        return None


class StreamDelta(BaseModel):
    """Delta content for streaming."""
    role: Optional[str] = None
    content: Optional[str] = None


class StreamChoice(BaseModel):
    """A streaming choice."""
    index: int = 0
    delta: StreamDelta = Field(default_factory=StreamDelta)
    finish_reason: Optional[FinishReason] = None


class ChatCompletionChunk(BaseModel):
    """One canonical streaming event."""
    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: List[StreamChoice]

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        # Empty delta fields are omitted, finish_reason stays explicit.
        for choice in data["choices"]:
            choice["delta"] = {k: v for k, v in choice["delta"].items() if v is not None}
        return data

    def to_sse(self) -> bytes:
        """Encode as a `data: <json>\\n\\n` event."""
        payload = json.dumps(self.to_dict(), separators=(",", ":"))
        return f"data: {payload}\n\n".encode("utf-8")
