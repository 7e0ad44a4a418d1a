"""Typed streaming events and the content-block delta dispatcher.

Each SSE frame of a streamed Messages response becomes one immutable
ProtocolEvent. ``content_block_delta`` frames carry exactly one Delta,
classified by parse_delta().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from parley.types import Citation, ContentBlock, Message, Usage, parse_content_block

# ---------------------------------------------------------------------------
# Deltas
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextDelta:
    text: str
    type: str = field(default="text_delta", init=False)


@dataclass(frozen=True)
class InputJsonDelta:
    partial_json: str
    type: str = field(default="input_json_delta", init=False)


@dataclass(frozen=True)
class ThinkingDelta:
    thinking: str
    type: str = field(default="thinking_delta", init=False)


@dataclass(frozen=True)
class SignatureDelta:
    signature: str
    type: str = field(default="signature_delta", init=False)


@dataclass(frozen=True)
class CitationsDelta:
    citation: Citation
    type: str = field(default="citations_delta", init=False)


@dataclass(frozen=True)
class CompactionDelta:
    content: str
    type: str = field(default="compaction_delta", init=False)


Delta = Union[TextDelta, InputJsonDelta, ThinkingDelta, SignatureDelta, CitationsDelta, CompactionDelta]


def _str_field(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def parse_delta(data: dict[str, Any]) -> Delta:
    """Classify the ``delta`` payload of a content_block_delta frame.

    Never raises. An unknown or missing ``type`` yields ``TextDelta("")``:
    newer API versions may add delta kinds an older client cannot read,
    and dropping them keeps the stream going. A field of the wrong type
    reads as "".
    """
    delta_type = data.get("type")

    if delta_type == "text_delta":
        return TextDelta(text=_str_field(data, "text"))
    if delta_type == "input_json_delta":
        return InputJsonDelta(partial_json=_str_field(data, "partial_json"))
    if delta_type == "thinking_delta":
        return ThinkingDelta(thinking=_str_field(data, "thinking"))
    if delta_type == "signature_delta":
        return SignatureDelta(signature=_str_field(data, "signature"))
    if delta_type == "citations_delta":
        citation = data.get("citation")
        return CitationsDelta(citation=Citation.from_dict(citation if isinstance(citation, dict) else {}))
    if delta_type == "compaction_delta":
        return CompactionDelta(content=_str_field(data, "content"))

    return TextDelta(text="")


# ---------------------------------------------------------------------------
# Protocol events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MessageStartEvent:
    message: Message
    type: str = field(default="message_start", init=False)


@dataclass(frozen=True)
class ContentBlockStartEvent:
    index: int
    block: ContentBlock
    type: str = field(default="content_block_start", init=False)


@dataclass(frozen=True)
class ContentBlockDeltaEvent:
    index: int
    delta: Delta
    type: str = field(default="content_block_delta", init=False)

    @property
    def text(self) -> str | None:
        return self.delta.text if isinstance(self.delta, TextDelta) else None

    @property
    def partial_json(self) -> str | None:
        return self.delta.partial_json if isinstance(self.delta, InputJsonDelta) else None

    @property
    def thinking(self) -> str | None:
        return self.delta.thinking if isinstance(self.delta, ThinkingDelta) else None

    @property
    def citation(self) -> Citation | None:
        return self.delta.citation if isinstance(self.delta, CitationsDelta) else None


@dataclass(frozen=True)
class ContentBlockStopEvent:
    index: int
    type: str = field(default="content_block_stop", init=False)


@dataclass(frozen=True)
class MessageDeltaEvent:
    """Carries the stop_reason; it is absent from message_start."""

    stop_reason: str | None = None
    stop_sequence: str | None = None
    usage: Usage | None = None
    type: str = field(default="message_delta", init=False)


@dataclass(frozen=True)
class MessageStopEvent:
    type: str = field(default="message_stop", init=False)


@dataclass(frozen=True)
class PingEvent:
    type: str = field(default="ping", init=False)


@dataclass(frozen=True)
class ErrorEvent:
    """In-stream error: the HTTP status was 200 but the body failed."""

    kind: str
    message: str
    type: str = field(default="error", init=False)


ProtocolEvent = Union[
    MessageStartEvent,
    ContentBlockStartEvent,
    ContentBlockDeltaEvent,
    ContentBlockStopEvent,
    MessageDeltaEvent,
    MessageStopEvent,
    PingEvent,
    ErrorEvent,
]


class MalformedEventError(ValueError):
    """A known event type whose payload is missing required fields."""


def _index(data: dict[str, Any]) -> int:
    index = data.get("index")
    if not isinstance(index, int):
        raise MalformedEventError(f"missing block index in {data.get('type')!r} event")
    return index


def parse_event(event_type: str, data: dict[str, Any]) -> ProtocolEvent | None:
    """Build a ProtocolEvent from an SSE ``event:`` name and its JSON data.

    Returns None for unknown event types. Raises MalformedEventError when
    a known type lacks required fields; the decoder drops those frames.
    """
    if event_type == "message_start":
        message = data.get("message")
        if not isinstance(message, dict):
            raise MalformedEventError("message_start without message")
        return MessageStartEvent(message=Message.from_dict(message))

    if event_type == "content_block_start":
        block = data.get("content_block")
        if not isinstance(block, dict):
            raise MalformedEventError("content_block_start without content_block")
        return ContentBlockStartEvent(index=_index(data), block=parse_content_block(block))

    if event_type == "content_block_delta":
        delta = data.get("delta")
        return ContentBlockDeltaEvent(
            index=_index(data),
            delta=parse_delta(delta if isinstance(delta, dict) else {}),
        )

    if event_type == "content_block_stop":
        return ContentBlockStopEvent(index=_index(data))

    if event_type == "message_delta":
        delta = data.get("delta")
        if not isinstance(delta, dict):
            delta = {}
        usage = data.get("usage")
        return MessageDeltaEvent(
            stop_reason=delta.get("stop_reason"),
            stop_sequence=delta.get("stop_sequence"),
            usage=Usage.from_dict(usage) if isinstance(usage, dict) else None,
        )

    if event_type == "message_stop":
        return MessageStopEvent()

    if event_type == "ping":
        return PingEvent()

    if event_type == "error":
        error = data.get("error")
        if not isinstance(error, dict):
            error = {}
        return ErrorEvent(
            kind=error.get("type", "unknown"),
            message=error.get("message", ""),
        )

    return None
