"""Conversation compaction -- replace long history with a model summary.

Before a tool-loop turn, the runner asks the Compactor whether the current
messages are over the token threshold. If so, the history becomes:

    user:      [Conversation Summary] ...
    assistant: acknowledgement
    <last two messages, verbatim>

Every API call made here fails open: a counting or summarizing error
means "don't compact this round", never an exception for the caller.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from parley.config import Settings
from parley.types import (
    CompactionBlock,
    MessageParam,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_THRESHOLD = 10000
SUMMARY_MARKER = "[Conversation Summary]"
ACKNOWLEDGEMENT = (
    "I understand. I have the context from our previous conversation. "
    "How can I help you continue?"
)
SUMMARY_PROMPT = (
    "Please provide a concise summary of this conversation that preserves "
    "all important context, tool usage, and results. Focus on key information "
    "needed to continue the conversation:\n\n"
)
MAX_MARKER_CHARS = 500  # per tool block in the transcript


@dataclass(frozen=True)
class CompactionConfig:
    """When and how the tool loop compacts its history.

    ``on_compact(tokens_before, tokens_after)`` is called after each
    compaction; a count that could not be measured is reported as 0.
    """

    enabled: bool = False
    token_threshold: int = DEFAULT_TOKEN_THRESHOLD
    on_compact: Callable[[int, int], None] | None = None
    summary_max_tokens: int = 2048

    def __post_init__(self) -> None:
        if self.token_threshold <= 0:
            raise ValueError(f"token_threshold must be > 0, got {self.token_threshold}")

    @classmethod
    def enabled_with(
        cls,
        threshold: int | None = None,
        on_compact: Callable[[int, int], None] | None = None,
        settings: Settings | None = None,
    ) -> CompactionConfig:
        """Enabled config; threshold defaults to Settings.compaction_threshold."""
        if threshold is None:
            threshold = (settings or Settings()).compaction_threshold
        return cls(enabled=True, token_threshold=threshold, on_compact=on_compact)


def _clip(text: str) -> str:
    if len(text) <= MAX_MARKER_CHARS:
        return text
    return text[:MAX_MARKER_CHARS] + "..."


def _tool_result_text(block: ToolResultBlock) -> str:
    if isinstance(block.content, str):
        return block.content
    return " ".join(
        item.get("text", "") for item in block.content if isinstance(item, dict)
    )


def render_transcript(messages: list[MessageParam]) -> str:
    """Flatten messages into ``Role: text`` paragraphs for summarization.

    Text blocks are kept in full. Tool calls, tool results and earlier
    compaction blocks become one-line bracketed markers so tool context
    survives the summary; thinking and opaque blocks are dropped.
    """
    paragraphs = []
    for msg in messages:
        role = msg.role.capitalize()
        if isinstance(msg.content, str):
            paragraphs.append(f"{role}: {msg.content}")
            continue

        parts: list[str] = []
        for block in msg.content:
            if isinstance(block, TextBlock):
                parts.append(block.text)
            elif isinstance(block, ToolUseBlock):
                parts.append(_clip(f"[tool_use {block.name} {json.dumps(block.input)}]"))
            elif isinstance(block, ToolResultBlock):
                flag = " (error)" if block.is_error else ""
                parts.append(_clip(f"[tool_result {block.tool_use_id}{flag}: {_tool_result_text(block)}]"))
            elif isinstance(block, CompactionBlock) and block.content:
                parts.append(_clip(f"[compaction {block.content}]"))
        paragraphs.append(f"{role}: " + "\n".join(parts))
    return "\n\n".join(paragraphs)


class Compactor:
    """Measures history size and summarizes it when over the threshold."""

    def __init__(
        self,
        client: Any,
        model: str,
        config: CompactionConfig,
        tools: list[dict[str, Any]] | None = None,
        system: str | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._config = config
        self._tools = tools
        self._system = system

    @property
    def config(self) -> CompactionConfig:
        return self._config

    def count_tokens(self, messages: list[MessageParam]) -> int | None:
        """Input-token count for ``messages``, or None if counting failed."""
        try:
            count = self._client.messages.count_tokens(
                model=self._model,
                messages=messages,
                tools=self._tools,
                system=self._system,
            )
        except Exception as e:
            logger.warning("Token counting failed, skipping compaction: %s", e)
            return None
        return count.input_tokens

    def should_compact(self, messages: list[MessageParam]) -> bool:
        if not self._config.enabled:
            return False
        tokens = self.count_tokens(messages)
        return tokens is not None and tokens > self._config.token_threshold

    def maybe_compact(self, messages: list[MessageParam]) -> list[MessageParam]:
        """Compact ``messages`` if enabled and over threshold, else return them.

        Counts once and reuses that figure as the "before" measurement.
        """
        if not self._config.enabled or len(messages) < 3:
            return messages
        tokens_before = self.count_tokens(messages)
        if tokens_before is None or tokens_before <= self._config.token_threshold:
            return messages
        return self.compact(messages, tokens_before=tokens_before)

    def compact(
        self,
        messages: list[MessageParam],
        tokens_before: int | None = None,
    ) -> list[MessageParam]:
        """Replace history with summary + acknowledgement + last two messages."""
        if len(messages) < 3:
            return messages

        if tokens_before is None:
            tokens_before = self.count_tokens(messages)
            if tokens_before is None:
                return messages

        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=self._config.summary_max_tokens,
                messages=[MessageParam.user(SUMMARY_PROMPT + render_transcript(messages))],
            )
        except Exception as e:
            logger.warning("Summary call failed, keeping full history: %s", e)
            return messages

        text_blocks = response.text_blocks
        summary = text_blocks[0].text if text_blocks else ""
        if not summary.strip():
            logger.warning("Summary call returned no text, keeping full history")
            return messages

        compacted = [
            MessageParam.user(f"{SUMMARY_MARKER}\n{summary}"),
            MessageParam.assistant(ACKNOWLEDGEMENT),
            *messages[-2:],
        ]

        tokens_after = self.count_tokens(compacted) or 0

        logger.info(
            "Compacted conversation: %d messages -> %d (%d -> %d tokens)",
            len(messages),
            len(compacted),
            tokens_before,
            tokens_after,
        )

        if self._config.on_compact is not None:
            try:
                self._config.on_compact(tokens_before, tokens_after)
            except Exception:
                logger.exception("on_compact callback failed")

        return compacted
