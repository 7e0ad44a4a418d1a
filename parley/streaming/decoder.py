"""SSE line decoder for streamed Messages responses.

Wire format, one event per blank-line-terminated group::

    event: content_block_delta
    data: {"type":"content_block_delta","index":0,"delta":{...}}

Only ``event:`` and ``data:`` lines matter. Comments (``:``) and blank
lines are keep-alive noise. One malformed frame never aborts the stream.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator

from parley.streaming.events import ProtocolEvent, parse_event

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


def _field_value(line: str, prefix: str) -> str:
    value = line[len(prefix):]
    return value[1:] if value.startswith(" ") else value


def iter_events(lines: Iterable[str]) -> Iterator[ProtocolEvent]:
    """Decode text lines into ProtocolEvents, lazily and in arrival order.

    The returned iterator is single-pass: it pulls from ``lines`` only as
    the consumer asks for the next event, and ends when ``lines`` does.
    """
    event_type = ""

    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line or line.startswith(":"):
            continue

        if line.startswith("event:"):
            event_type = _field_value(line, "event:").strip()
            continue

        if not line.startswith("data:"):
            continue

        payload = _field_value(line, "data:")
        if payload.strip() == DONE_SENTINEL:
            continue

        try:
            data = json.loads(payload)
            if not isinstance(data, dict):
                raise ValueError("data payload is not a JSON object")
            event = parse_event(event_type, data)
        except (ValueError, TypeError, AttributeError) as e:
            logger.debug("Skipping malformed %r frame: %s", event_type, e)
            continue

        if event is None:
            logger.debug("Skipping unknown event type %r", event_type)
            continue

        yield event
