"""Typed request/response models for the Messages API.

Content blocks are a tagged variant: one frozen dataclass per wire ``type``
plus ``OpaqueBlock`` for everything the client does not interpret
(server tool calls, images, documents, search results...). Opaque blocks
keep their raw dict and are sent back to the API untouched.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

USER = "user"
ASSISTANT = "assistant"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Citation:
    """A citation into a source document, as absolute character offsets."""

    start: int
    end: int
    document_title: str | None = None
    document_index: int | None = None
    cited_text: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Citation:
        """Build from a wire citation; wrong-typed fields read as 0 or None."""
        start = data.get("start_char_index", data.get("start_char"))
        end = data.get("end_char_index", data.get("end_char"))
        title = data.get("document_title")
        doc_index = data.get("document_index")
        cited = data.get("cited_text")
        return cls(
            start=start if _is_int(start) else 0,
            end=end if _is_int(end) else 0,
            document_title=title if isinstance(title, str) else None,
            document_index=doc_index if _is_int(doc_index) else None,
            cited_text=cited if isinstance(cited, str) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "char_location",
            "start_char_index": self.start,
            "end_char_index": self.end,
        }
        if self.document_title is not None:
            data["document_title"] = self.document_title
        if self.document_index is not None:
            data["document_index"] = self.document_index
        if self.cited_text is not None:
            data["cited_text"] = self.cited_text
        return data


@dataclass(frozen=True)
class TextBlock:
    text: str
    citations: tuple[Citation, ...] = ()
    type: str = field(default="text", init=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "text", "text": self.text}
        if self.citations:
            data["citations"] = [c.to_dict() for c in self.citations]
        return data


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    type: str = field(default="tool_use", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: str | list[dict[str, Any]] = ""
    is_error: bool = False
    type: str = field(default="tool_result", init=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            data["is_error"] = True
        return data


@dataclass(frozen=True)
class ThinkingBlock:
    thinking: str
    signature: str = ""
    type: str = field(default="thinking", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "thinking", "thinking": self.thinking, "signature": self.signature}


@dataclass(frozen=True)
class RedactedThinkingBlock:
    """Redacted reasoning; must be passed back verbatim in later turns."""

    data: str
    type: str = field(default="redacted_thinking", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "redacted_thinking", "data": self.data}


@dataclass(frozen=True)
class CompactionBlock:
    content: str | None = None
    type: str = field(default="compaction", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "compaction", "content": self.content}


@dataclass(frozen=True)
class OpaqueBlock:
    """Any block type the client does not model; round-trips unchanged."""

    type: str
    raw: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return self.raw


ContentBlock = Union[
    TextBlock,
    ToolUseBlock,
    ToolResultBlock,
    ThinkingBlock,
    RedactedThinkingBlock,
    CompactionBlock,
    OpaqueBlock,
]


def _text_block(data: dict[str, Any]) -> TextBlock:
    text = data.get("text")
    citations = data.get("citations")
    if not isinstance(citations, list):
        citations = []
    return TextBlock(
        text=text if isinstance(text, str) else "",
        citations=tuple(Citation.from_dict(c) for c in citations if isinstance(c, dict)),
    )


_BLOCK_PARSERS = {
    "text": _text_block,
    "tool_use": lambda d: ToolUseBlock(
        id=_str(d, "id"),
        name=_str(d, "name"),
        input=d["input"] if isinstance(d.get("input"), dict) else {},
    ),
    "tool_result": lambda d: ToolResultBlock(
        tool_use_id=d.get("tool_use_id", ""),
        content=d.get("content", ""),
        is_error=bool(d.get("is_error", False)),
    ),
    "thinking": lambda d: ThinkingBlock(thinking=_str(d, "thinking"), signature=_str(d, "signature")),
    "redacted_thinking": lambda d: RedactedThinkingBlock(data=d.get("data", "")),
    "compaction": lambda d: CompactionBlock(content=d.get("content")),
}


def parse_content_block(data: dict[str, Any]) -> ContentBlock:
    """Dispatch a wire content block on its ``type`` field.

    Unknown or missing types fall back to OpaqueBlock, which covers every
    server-executed variant (web search, code execution, MCP, ...).
    """
    block_type = data.get("type")
    parser = _BLOCK_PARSERS.get(block_type) if isinstance(block_type, str) else None
    if parser is None:
        return OpaqueBlock(type=str(block_type or "unknown"), raw=data)
    return parser(data)


def block_to_dict(block: ContentBlock | dict[str, Any]) -> dict[str, Any]:
    if isinstance(block, dict):
        return block
    return block.to_dict()


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass
class MessageParam:
    """A request-side message: role plus string or block content."""

    role: str  # "user" or "assistant"
    content: str | list[ContentBlock]

    @classmethod
    def user(cls, content: str | list[ContentBlock]) -> MessageParam:
        return cls(role=USER, content=content)

    @classmethod
    def assistant(cls, content: str | list[ContentBlock]) -> MessageParam:
        return cls(role=ASSISTANT, content=content)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [block_to_dict(b) for b in self.content]}


def coerce_message(message: MessageParam | dict[str, Any]) -> MessageParam:
    """Accept plain ``{"role", "content"}`` dicts wherever a MessageParam is."""
    if isinstance(message, MessageParam):
        return message
    content = message.get("content", "")
    if isinstance(content, list):
        content = [parse_content_block(b) if isinstance(b, dict) else b for b in content]
    return MessageParam(role=message["role"], content=content)


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None
    service_tier: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Usage:
        data = data or {}
        return cls(
            input_tokens=data.get("input_tokens") or 0,
            output_tokens=data.get("output_tokens") or 0,
            cache_creation_input_tokens=data.get("cache_creation_input_tokens"),
            cache_read_input_tokens=data.get("cache_read_input_tokens"),
            service_tier=data.get("service_tier"),
        )


@dataclass(frozen=True)
class TokenCount:
    """Response of the token counting endpoint."""

    input_tokens: int
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenCount:
        return cls(
            input_tokens=data["input_tokens"],
            cache_creation_input_tokens=data.get("cache_creation_input_tokens"),
            cache_read_input_tokens=data.get("cache_read_input_tokens"),
        )

    @property
    def total_billable_tokens(self) -> int:
        return self.input_tokens + (self.cache_creation_input_tokens or 0)


@dataclass
class Message:
    """A full model reply."""

    id: str
    model: str
    content: list[ContentBlock] = field(default_factory=list)
    role: str = ASSISTANT
    stop_reason: str | None = None  # end_turn, max_tokens, stop_sequence, tool_use, pause_turn, refusal
    stop_sequence: str | None = None
    usage: Usage = field(default_factory=Usage)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(
            id=data.get("id", ""),
            model=data.get("model", ""),
            role=data.get("role", ASSISTANT),
            content=[parse_content_block(b) for b in data.get("content") or []],
            stop_reason=data.get("stop_reason"),
            stop_sequence=data.get("stop_sequence"),
            usage=Usage.from_dict(data.get("usage")),
        )

    @property
    def tool_use_requested(self) -> bool:
        return self.stop_reason == "tool_use"

    @property
    def tool_use_blocks(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def text_blocks(self) -> list[TextBlock]:
        return [b for b in self.content if isinstance(b, TextBlock)]

    @property
    def thinking_blocks(self) -> list[ThinkingBlock]:
        return [b for b in self.content if isinstance(b, ThinkingBlock)]

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks ("" if there are none)."""
        return "".join(b.text for b in self.text_blocks)

    def parsed_output(self) -> Any | None:
        """JSON payload of the first text block, for structured outputs."""
        blocks = self.text_blocks
        if not blocks or not blocks[0].text:
            return None
        try:
            return json.loads(blocks[0].text)
        except ValueError:
            return None
