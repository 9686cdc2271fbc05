"""
SSE transcoding.

Upstream SSE bodies arrive in arbitrary byte chunks that can split a
line, a `data: ` prefix, a JSON object or a multi-byte character. Only
newline-terminated lines are parsed; the trailing partial line is held
back until more bytes arrive or the stream ends. Each parsed event goes
through a provider-specific mapper that yields zero or one canonical
chunk.
"""

import codecs
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

from ..models.response import (
    ChatCompletionChunk,
    FinishReason,
    StreamChoice,
    StreamDelta,
    current_timestamp,
    generate_id,
)

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_EVENT = b"data: [DONE]\n\n"

StreamEventMapper = Callable[[Dict[str, Any]], Optional[StreamChoice]]


def split_lines(buffer: str, text: str) -> Tuple[List[str], str]:
    """
    Append text to buffer and split off complete lines.

    Returns:
        (complete lines, remaining partial line)
    """
    lines = (buffer + text).split("\n")
    remainder = lines.pop()
    return lines, remainder


def parse_data_line(line: str) -> Optional[Dict[str, Any]]:
    """
    Parse one SSE line.

    Returns the JSON object for a `data:` line, or None for other fields,
    the [DONE] marker and payloads that do not parse.
    """
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None

    payload = line[len(DATA_PREFIX):]
    if payload.startswith(" "):
        payload = payload[1:]
    if not payload or payload == "[DONE]":
        return None

    try:
        event = json.loads(payload)
    except ValueError:
        logger.debug(f"Skipping malformed SSE payload ({len(payload)} chars)")
        return None
    return event if isinstance(event, dict) else None


class SSELineBuffer:
    """Incremental SSE parser: bytes in, JSON events out."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.buffer = ""

    def feed(self, chunk: bytes) -> List[Dict[str, Any]]:
        lines, self.buffer = split_lines(self.buffer, self._decoder.decode(chunk))
        return [event for event in map(parse_data_line, lines) if event is not None]

    def flush(self) -> List[Dict[str, Any]]:
        """Parse whatever is left once the upstream has closed."""
        lines, remainder = split_lines(self.buffer, self._decoder.decode(b"", final=True))
        lines.append(remainder)
        self.buffer = ""
        return [event for event in map(parse_data_line, lines) if event is not None]


def anthropic_event_to_choice(event: Dict[str, Any]) -> Optional[StreamChoice]:
    """Map an Anthropic Messages stream event."""
    event_type = event.get("type")

    if event_type == "content_block_delta":
        text = (event.get("delta") or {}).get("text")
        if text:
            return StreamChoice(delta=StreamDelta(content=text))

    elif event_type == "message_stop":
        return StreamChoice(finish_reason=FinishReason.STOP)

    return None


def gemini_event_to_choice(event: Dict[str, Any]) -> Optional[StreamChoice]:
    """Map a Gemini streamGenerateContent event."""
    candidates = event.get("candidates") or []
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return None
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    text = parts[0].get("text")
    if isinstance(text, str) and text:
        return StreamChoice(delta=StreamDelta(content=text))
    return None


class SSETranscoder:
    """
    Converts an upstream SSE byte stream into canonical SSE events.

    All chunks of one stream share an id and created timestamp.
    """

    def __init__(
        self,
        mapper: StreamEventMapper,
        model: str,
        completion_id: Optional[str] = None,
        created: Optional[int] = None,
    ):
        self._mapper = mapper
        self._lines = SSELineBuffer()
        self.model = model
        self.completion_id = completion_id or generate_id()
        self.created = created if created is not None else current_timestamp()
        self.finished = False

    def _encode(self, events: List[Dict[str, Any]]) -> List[bytes]:
        out = []
        for event in events:
            choice = self._mapper(event)
            if choice is None:
                continue
            chunk = ChatCompletionChunk(
                id=self.completion_id,
                created=self.created,
                model=self.model,
                choices=[choice],
            )
            out.append(chunk.to_sse())
        return out

    def feed(self, chunk: bytes) -> List[bytes]:
        return self._encode(self._lines.feed(chunk))

    def finish(self) -> List[bytes]:
        """Flush the held-back line and append the terminal sentinel."""
        if self.finished:
            return []
        self.finished = True
        return self._encode(self._lines.flush()) + [DONE_EVENT]


async def transcode_stream(
    source: AsyncIterator[bytes],
    transcoder: SSETranscoder,
) -> AsyncIterator[bytes]:
    """Pull upstream chunks and yield canonical SSE events, then [DONE]."""
    async for chunk in source:
        for event in transcoder.feed(chunk):
            yield event
    for event in transcoder.finish():
        yield event
