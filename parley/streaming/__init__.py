"""Streaming protocol engine -- SSE lines to typed events.

Public API:
    iter_events        - Decode SSE text lines into ProtocolEvents
    parse_event        - Build one ProtocolEvent from an event name + JSON
    parse_delta        - Classify a content_block_delta payload
    MessageStream      - Single-pass stream with text/tool/thinking/citation views
    MessageAccumulator - Rebuild a full Message from events
"""

from parley.streaming.decoder import iter_events
from parley.streaming.events import (
    CitationsDelta,
    CompactionDelta,
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    ContentBlockStopEvent,
    Delta,
    ErrorEvent,
    InputJsonDelta,
    MessageDeltaEvent,
    MessageStartEvent,
    MessageStopEvent,
    PingEvent,
    ProtocolEvent,
    SignatureDelta,
    TextDelta,
    ThinkingDelta,
    parse_delta,
    parse_event,
)
from parley.streaming.stream import (
    MessageAccumulator,
    MessageStream,
    ToolInputFragment,
    citations,
    text_deltas,
    thinking_deltas,
    tool_input_deltas,
)

__all__ = [
    "CitationsDelta",
    "CompactionDelta",
    "ContentBlockDeltaEvent",
    "ContentBlockStartEvent",
    "ContentBlockStopEvent",
    "Delta",
    "ErrorEvent",
    "InputJsonDelta",
    "MessageAccumulator",
    "MessageDeltaEvent",
    "MessageStartEvent",
    "MessageStopEvent",
    "MessageStream",
    "PingEvent",
    "ProtocolEvent",
    "SignatureDelta",
    "TextDelta",
    "ThinkingDelta",
    "ToolInputFragment",
    "citations",
    "iter_events",
    "parse_delta",
    "parse_event",
    "text_deltas",
    "thinking_deltas",
    "tool_input_deltas",
]
