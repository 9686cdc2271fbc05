"""
Canonical request models.

The inbound contract is OpenAI-compatible; conversion helpers render it
into each upstream wire format.
"""

import json
from typing import Optional, List, Dict, Any, Union, Literal, Tuple

from pydantic import BaseModel, ConfigDict, Field

ANTHROPIC_DEFAULT_MAX_TOKENS = 4096

# Model families that reject `max_tokens` and expect `max_completion_tokens`.
MAX_COMPLETION_TOKENS_PREFIXES: Tuple[str, ...] = ("gpt-5", "o1", "o3", "o4")


def uses_max_completion_tokens(model: str) -> bool:
    """Check the hard-coded generation table for the output-limit parameter name."""
    return model.lower().startswith(MAX_COMPLETION_TOKENS_PREFIXES)


class ImageURL(BaseModel):
    """Image reference inside a content part."""
    url: str
    detail: Optional[Literal["auto", "low", "high"]] = None


class ContentPart(BaseModel):
    """A single part of a multimodal message."""
    type: Literal["text", "image_url"]
    text: Optional[str] = None
    image_url: Optional[ImageURL] = None


class Message(BaseModel):
    """
    Unified message format.

    Content is either plain text or an ordered list of text/image parts.
    """
    model_config = ConfigDict(extra="allow")

    role: Literal["system", "user", "assistant", "tool"]
    content: Union[str, List[ContentPart]]
    name: Optional[str] = None
    tool_call_id: Optional[str] = None

    def content_as_text(self) -> str:
        """Return content as a string, serializing structured parts."""
        if isinstance(self.content, str):
            return self.content
        parts = [p.model_dump(exclude_none=True) for p in self.content]
        return json.dumps(parts, separators=(",", ":"))

    def to_wire(self) -> Dict[str, Any]:
        """Dump without unset optional fields."""
        return self.model_dump(exclude_none=True)


class ChatRequest(BaseModel):
    """
    Unified chat completion request.

    Compatible with the OpenAI chat-completions body.
    """
    messages: List[Message] = Field(..., min_length=1, description="Conversation messages")
    model: Optional[str] = Field(default=None, description="Model identifier")

    max_tokens: Optional[int] = Field(default=None, ge=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    top_p: Optional[float] = Field(default=None, ge=0, le=1)
    stream: bool = Field(default=False)
    # Advisory only; the transport default applies.
    timeout: Optional[float] = Field(default=None, gt=0)

    def system_prompt(self) -> Optional[str]:
        """Join all system messages, or None if there are none."""
        parts = [m.content_as_text() for m in self.messages if m.role == "system"]
        return "\n".join(parts) if parts else None

    def to_openai_format(
        self,
        model: Optional[str] = None,
        stream: bool = False,
        include_model: bool = True,
    ) -> Dict[str, Any]:
        """
        Convert to OpenAI API format.

        Optional parameters are only included when set. With
        `include_model=False` the model (an Azure deployment name) only
        selects the output-limit parameter and is left out of the body.
        """
        data: Dict[str, Any] = {
            "messages": [m.to_wire() for m in self.messages],
            "stream": stream,
        }
        if model and include_model:
            data["model"] = model

        if self.max_tokens is not None:
            if model and uses_max_completion_tokens(model):
                data["max_completion_tokens"] = self.max_tokens
            else:
                data["max_tokens"] = self.max_tokens
        if self.temperature is not None:
            data["temperature"] = self.temperature
        if self.top_p is not None:
            data["top_p"] = self.top_p

        return data

    def to_anthropic_format(self, model: Optional[str] = None, stream: bool = False) -> Dict[str, Any]:
        """Convert to Anthropic Messages API format."""
        messages = [
            {"role": m.role, "content": m.content_as_text()}
            for m in self.messages
            if m.role in ("user", "assistant")
        ]

        data: Dict[str, Any] = {
            "messages": messages,
            "max_tokens": self.max_tokens or ANTHROPIC_DEFAULT_MAX_TOKENS,
            "stream": stream,
        }
        if model:
            data["model"] = model

        system = self.system_prompt()
        if system:
            data["system"] = system

        if self.temperature is not None:
            data["temperature"] = self.temperature
        if self.top_p is not None:
            data["top_p"] = self.top_p

        return data

    def to_gemini_format(self) -> Dict[str, Any]:
        """Convert to Gemini generateContent format."""
        contents = [
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content_as_text()}],
            }
            for m in self.messages
            if m.role != "system"
        ]

        data: Dict[str, Any] = {"contents": contents}

        system = self.system_prompt()
        if system:
            data["systemInstruction"] = {"parts": [{"text": system}]}

        generation_config: Dict[str, Any] = {}
        if self.max_tokens is not None:
            generation_config["maxOutputTokens"] = self.max_tokens
        if self.temperature is not None:
            generation_config["temperature"] = self.temperature
        if self.top_p is not None:
            generation_config["topP"] = self.top_p
        if generation_config:
            data["generationConfig"] = generation_config

        return data
