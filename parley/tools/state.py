"""Mutable record of one tool-loop run."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from parley.types import Message, MessageParam


class FinishReason(StrEnum):
    COMPLETED = "completed"  # the model stopped asking for tools
    MAX_ITERATIONS = "max_iterations"  # the loop gave up


@dataclass
class ConversationState:
    """Accumulated messages, iteration counter and terminal flag.

    Created privately by each ToolRunner and never handed out; callers
    only ever see copies of ``messages``.
    """

    messages: list[MessageParam] = field(default_factory=list)
    iteration: int = 0
    finished: bool = False
    finish_reason: FinishReason | None = None
    last_response: Message | None = None

    def restart(self, messages: list[MessageParam]) -> None:
        self.messages = list(messages)
        self.iteration = 0
        self.finished = False
        self.finish_reason = None
        self.last_response = None

    def finish(self, reason: FinishReason) -> None:
        self.finished = True
        self.finish_reason = reason

    def resume(self) -> None:
        self.finished = False
        self.finish_reason = None
