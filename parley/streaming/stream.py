"""MessageStream and the read-only projections over a decoded event sequence.

A decoded sequence is single-pass. Each projection below consumes the
events it is given; running two projections over the same response needs
two streams, or one pass that feeds every consumer (see MessageAccumulator
and ToolRunner.each_streaming).
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from parley.errors import StreamConsumedError
from parley.streaming.decoder import iter_events
from parley.streaming.events import (
    CitationsDelta,
    CompactionDelta,
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    ContentBlockStopEvent,
    InputJsonDelta,
    MessageDeltaEvent,
    MessageStartEvent,
    ProtocolEvent,
    SignatureDelta,
    TextDelta,
    ThinkingDelta,
)
from parley.types import (
    Citation,
    CompactionBlock,
    ContentBlock,
    Message,
    OpaqueBlock,
    TextBlock,
    ThinkingBlock,
    ToolUseBlock,
    Usage,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolInputFragment:
    """One piece of a tool's JSON input, tagged with its block index."""

    index: int
    name: str | None
    partial_json: str


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------


def text_deltas(events: Iterable[ProtocolEvent]) -> Iterator[str]:
    for event in events:
        if isinstance(event, ContentBlockDeltaEvent) and isinstance(event.delta, TextDelta):
            yield event.delta.text


def tool_input_deltas(events: Iterable[ProtocolEvent]) -> Iterator[ToolInputFragment]:
    """Yield tool-input JSON fragments in arrival order.

    Concatenating the fragments of one index reproduces the full argument
    string; this function never parses it.
    """
    names: dict[int, str] = {}
    for event in events:
        if isinstance(event, ContentBlockStartEvent):
            if isinstance(event.block, ToolUseBlock):
                names[event.index] = event.block.name
        elif isinstance(event, ContentBlockDeltaEvent):
            if isinstance(event.delta, InputJsonDelta):
                yield ToolInputFragment(event.index, names.get(event.index), event.delta.partial_json)
        elif isinstance(event, ContentBlockStopEvent):
            names.pop(event.index, None)


def thinking_deltas(events: Iterable[ProtocolEvent]) -> Iterator[str]:
    for event in events:
        if isinstance(event, ContentBlockDeltaEvent) and isinstance(event.delta, ThinkingDelta):
            yield event.delta.thinking


def citations(events: Iterable[ProtocolEvent]) -> Iterator[Citation]:
    for event in events:
        if isinstance(event, ContentBlockDeltaEvent) and isinstance(event.delta, CitationsDelta):
            yield event.delta.citation


# ---------------------------------------------------------------------------
# Accumulation
# ---------------------------------------------------------------------------


class _BlockBuilder:
    """Collects the deltas of one content block until its stop event."""

    def __init__(self, block: ContentBlock) -> None:
        self.block = block
        self.text: list[str] = []
        self.json: list[str] = []
        self.thinking: list[str] = []
        self.signature: list[str] = []
        self.citations: list[Citation] = []
        self.compaction: list[str] = []

    def add(self, delta: Any) -> None:
        if isinstance(delta, TextDelta):
            self.text.append(delta.text)
        elif isinstance(delta, InputJsonDelta):
            self.json.append(delta.partial_json)
        elif isinstance(delta, ThinkingDelta):
            self.thinking.append(delta.thinking)
        elif isinstance(delta, SignatureDelta):
            self.signature.append(delta.signature)
        elif isinstance(delta, CitationsDelta):
            self.citations.append(delta.citation)
        elif isinstance(delta, CompactionDelta):
            self.compaction.append(delta.content)

    def _parsed_input(self, fallback: dict[str, Any]) -> dict[str, Any]:
        raw = "".join(self.json)
        if not raw:
            return fallback
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Tool input JSON did not parse (%d chars), using {}", len(raw))
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def build(self) -> ContentBlock:
        block = self.block
        if isinstance(block, TextBlock):
            return TextBlock(
                text=block.text + "".join(self.text),
                citations=block.citations + tuple(self.citations),
            )
        if isinstance(block, ToolUseBlock):
            return ToolUseBlock(id=block.id, name=block.name, input=self._parsed_input(block.input))
        if isinstance(block, ThinkingBlock):
            return ThinkingBlock(
                thinking=block.thinking + "".join(self.thinking),
                signature=block.signature + "".join(self.signature),
            )
        if isinstance(block, CompactionBlock):
            if not self.compaction:
                return block
            return CompactionBlock(content=(block.content or "") + "".join(self.compaction))
        if isinstance(block, OpaqueBlock) and self.json:
            # Server tool calls stream their input the same way as tool_use.
            raw = copy.deepcopy(block.raw)
            raw["input"] = self._parsed_input(raw.get("input") or {})
            return OpaqueBlock(type=block.type, raw=raw)
        return block


class MessageAccumulator:
    """Folds a streamed event sequence back into a complete Message."""

    def __init__(self) -> None:
        self._start: Message | None = None
        self._builders: dict[int, _BlockBuilder] = {}
        self._blocks: dict[int, ContentBlock] = {}
        self._stop_reason: str | None = None
        self._stop_sequence: str | None = None
        self._delta_usage: Usage | None = None

    @property
    def started(self) -> bool:
        return self._start is not None or bool(self._builders) or bool(self._blocks)

    def feed(self, event: ProtocolEvent) -> None:
        if isinstance(event, MessageStartEvent):
            self._start = event.message
        elif isinstance(event, ContentBlockStartEvent):
            self._builders[event.index] = _BlockBuilder(event.block)
        elif isinstance(event, ContentBlockDeltaEvent):
            builder = self._builders.get(event.index)
            if builder is not None:
                builder.add(event.delta)
        elif isinstance(event, ContentBlockStopEvent):
            builder = self._builders.pop(event.index, None)
            if builder is not None:
                self._blocks[event.index] = builder.build()
        elif isinstance(event, MessageDeltaEvent):
            if event.stop_reason is not None:
                self._stop_reason = event.stop_reason
            if event.stop_sequence is not None:
                self._stop_sequence = event.stop_sequence
            if event.usage is not None:
                self._delta_usage = event.usage

    def _usage(self) -> Usage:
        base = self._start.usage if self._start else Usage()
        delta = self._delta_usage
        if delta is None:
            return base
        return Usage(
            input_tokens=delta.input_tokens or base.input_tokens,
            output_tokens=delta.output_tokens or base.output_tokens,
            cache_creation_input_tokens=(
                delta.cache_creation_input_tokens
                if delta.cache_creation_input_tokens is not None
                else base.cache_creation_input_tokens
            ),
            cache_read_input_tokens=(
                delta.cache_read_input_tokens
                if delta.cache_read_input_tokens is not None
                else base.cache_read_input_tokens
            ),
            service_tier=delta.service_tier or base.service_tier,
        )

    def message(self) -> Message:
        """Snapshot of the message so far; unfinished blocks are included."""
        blocks = dict(self._blocks)
        for index, builder in self._builders.items():
            blocks[index] = builder.build()

        start = self._start
        return Message(
            id=start.id if start else "",
            model=start.model if start else "",
            role=start.role if start else "assistant",
            content=[blocks[i] for i in sorted(blocks)],
            stop_reason=self._stop_reason or (start.stop_reason if start else None),
            stop_sequence=self._stop_sequence or (start.stop_sequence if start else None),
            usage=self._usage(),
        )

    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.message().content if isinstance(b, ToolUseBlock)]


# ---------------------------------------------------------------------------
# MessageStream
# ---------------------------------------------------------------------------


class MessageStream:
    """One streamed response: an iterable of ProtocolEvents, usable once.

    Wraps the response body's line iterator. Breaking out of the loop early
    is fine; close() (or the context manager) releases the transport.
    """

    def __init__(
        self,
        lines: Iterable[str],
        close: Callable[[], None] | None = None,
    ) -> None:
        self._lines = lines
        self._close = close
        self._consumed = False
        self._closed = False

    def __iter__(self) -> Iterator[ProtocolEvent]:
        if self._consumed:
            raise StreamConsumedError("MessageStream can only be iterated once")
        self._consumed = True
        return self._iterate()

    def _iterate(self) -> Iterator[ProtocolEvent]:
        try:
            yield from iter_events(self._lines)
        finally:
            self.close()

    def __enter__(self) -> MessageStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._close is not None:
            self._close()

    # Projections -------------------------------------------------------

    def text(self) -> Iterator[str]:
        return text_deltas(self)

    def collect_text(self) -> str:
        return "".join(self.text())

    def tool_input_deltas(self) -> Iterator[ToolInputFragment]:
        return tool_input_deltas(self)

    def thinking(self) -> Iterator[str]:
        return thinking_deltas(self)

    def citations(self) -> Iterator[Citation]:
        return citations(self)

    def final_message(self) -> Message | None:
        """Consume the stream and return the accumulated message."""
        accumulator = MessageAccumulator()
        for event in self:
            accumulator.feed(event)
        return accumulator.message() if accumulator.started else None
