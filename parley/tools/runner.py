"""Tool runner -- the agentic request/dispatch loop.

Each turn: optionally compact history, call the model, and if it asked for
tools run them one at a time in content order, then append the assistant
reply and a single user message holding every tool result. The loop stops
when the model stops asking for tools or the iteration budget runs out.

Tool failures never abort the loop; they go back to the model as
``is_error`` results. Model-call failures propagate unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from parley.config import Settings
from parley.errors import StreamError
from parley.streaming.events import ErrorEvent, ProtocolEvent
from parley.streaming.stream import MessageAccumulator
from parley.tools.compaction import CompactionConfig, Compactor
from parley.tools.state import ConversationState, FinishReason
from parley.tools.tool import Tool, index_tools, invoke_tool
from parley.types import Message, MessageParam, ToolResultBlock, coerce_message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunnerParams:
    """Read-only snapshot of a runner, for inspection and logging."""

    model: str
    max_tokens: int
    messages: list[MessageParam]
    current_messages: list[MessageParam]
    tools: list[str]
    max_iterations: int
    iteration: int
    system: str | None
    finished: bool


class ToolRunner:
    """Runs a conversation, executing the model's tool calls locally.

    ``client`` needs a ``messages`` resource with create(), stream() and
    count_tokens() (see parley.client.Messages). ``model``, ``max_tokens``
    and ``max_iterations`` fall back to Settings when passed as None.

    Step-by-step::

        runner = ToolRunner(client, model, 1024, [MessageParam.user("...")], [weather])
        while (msg := runner.next_message()) is not None:
            print(msg.text)
    """

    def __init__(
        self,
        client: Any,
        model: str | None,
        max_tokens: int | None,
        messages: list[MessageParam | dict[str, Any]],
        tools: list[Tool | dict[str, Any]],
        max_iterations: int | None = None,
        system: str | None = None,
        compaction: CompactionConfig | None = None,
        thinking: dict[str, Any] | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or Settings()
        model = model or settings.model
        max_tokens = max_tokens or settings.max_tokens
        if max_iterations is None:
            max_iterations = settings.max_iterations
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")

        self._client = client
        self._model = model
        self._max_tokens = max_tokens
        self._tools = list(tools)
        self._tool_index = index_tools(self._tools)
        self._max_iterations = max_iterations
        self._system = system
        self._thinking = thinking
        self._initial_messages = [coerce_message(m) for m in messages]
        self._state = ConversationState(messages=list(self._initial_messages))

        self._compactor: Compactor | None = None
        if compaction is not None and compaction.enabled:
            self._compactor = Compactor(
                client,
                model,
                compaction,
                tools=self._tool_definitions(),
                system=system,
            )

    # ------------------------------------------------------------------
    # State inspection
    # ------------------------------------------------------------------

    @property
    def finished(self) -> bool:
        return self._state.finished

    @property
    def iteration(self) -> int:
        return self._state.iteration

    @property
    def finish_reason(self) -> FinishReason | None:
        """Why the loop ended: COMPLETED, MAX_ITERATIONS, or None if running."""
        return self._state.finish_reason

    @property
    def last_response(self) -> Message | None:
        return self._state.last_response

    def current_messages(self) -> list[MessageParam]:
        """Copy of the accumulated messages; mutating it has no effect here."""
        return list(self._state.messages)

    def params(self) -> RunnerParams:
        return RunnerParams(
            model=self._model,
            max_tokens=self._max_tokens,
            messages=list(self._initial_messages),
            current_messages=self.current_messages(),
            tools=[t.name if isinstance(t, Tool) else str(t.get("name", "")) for t in self._tools],
            max_iterations=self._max_iterations,
            iteration=self._state.iteration,
            system=self._system,
            finished=self._state.finished,
        )

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Back to the initial messages with a fresh iteration budget."""
        self._state.restart(self._initial_messages)

    def feed_messages(self, messages: list[MessageParam | dict[str, Any]]) -> None:
        """Append messages; a finished run resumes if any were given."""
        self._state.messages.extend(coerce_message(m) for m in messages)
        if self._state.finished and messages:
            self._state.resume()

    def feed_message(self, message: MessageParam | dict[str, Any]) -> None:
        self.feed_messages([message])

    def next_message(self) -> Message | None:
        """Run one turn. Returns None once the loop has finished."""
        if not self._begin_turn():
            return None

        response = self._client.messages.create(**self._request_kwargs())
        self._complete_turn(response)
        return response

    def each_message(self) -> Iterator[Message]:
        """Reset, then yield every reply until the loop finishes."""
        self.reset()
        while (message := self.next_message()) is not None:
            yield message

    def run_until_finished(self) -> list[Message]:
        return list(self.each_message())

    def final_message(self) -> Message:
        last: Message | None = None
        for message in self.each_message():
            last = message
        if last is None:
            raise RuntimeError("No message returned")
        return last

    def each_streaming(self) -> Iterator[ProtocolEvent]:
        """Streaming variant of each_message(): yields every event live.

        Tool calls are rebuilt from the stream as it passes through and run
        after each stream ends, exactly as next_message() would run them.
        An in-stream error event is yielded and then raised as StreamError.
        """
        self.reset()
        while self._begin_turn():
            accumulator = MessageAccumulator()
            with self._client.messages.stream(**self._request_kwargs()) as stream:
                for event in stream:
                    yield event
                    if isinstance(event, ErrorEvent):
                        raise StreamError(event.kind, event.message)
                    accumulator.feed(event)
            self._complete_turn(accumulator.message())

    # ------------------------------------------------------------------
    # Turn internals
    # ------------------------------------------------------------------

    def _tool_definitions(self) -> list[dict[str, Any]]:
        return [t.to_definition() if isinstance(t, Tool) else t for t in self._tools]

    def _request_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": list(self._state.messages),
            "tools": self._tool_definitions(),
            "system": self._system,
        }
        if self._thinking is not None:
            kwargs["thinking"] = self._thinking
        return kwargs

    def _begin_turn(self) -> bool:
        """Advance the iteration counter and compact if needed.

        Returns False (and finishes the run) when there is nothing to do.
        """
        state = self._state
        if state.finished:
            return False

        if state.iteration >= self._max_iterations:
            state.finish(FinishReason.MAX_ITERATIONS)
            logger.info("Tool loop reached max_iterations=%d", self._max_iterations)
            return False
        state.iteration += 1

        if self._compactor is not None:
            state.messages = self._compactor.maybe_compact(state.messages)
        return True

    def _complete_turn(self, response: Message) -> None:
        state = self._state
        state.last_response = response

        tool_uses = response.tool_use_blocks
        if not response.tool_use_requested or not tool_uses:
            state.finish(FinishReason.COMPLETED)
            return

        results: list[ToolResultBlock] = []
        for tool_use in tool_uses:
            outcome = invoke_tool(self._tool_index, tool_use)
            results.append(outcome.to_result_block(tool_use.id))

        state.messages.append(MessageParam.assistant(list(response.content)))
        state.messages.append(MessageParam.user(list(results)))
        logger.debug(
            "Turn %d: ran %d tool call(s), %d error(s)",
            state.iteration,
            len(results),
            sum(1 for r in results if r.is_error),
        )

        if state.iteration >= self._max_iterations:
            state.finish(FinishReason.MAX_ITERATIONS)
            logger.info("Tool loop reached max_iterations=%d", self._max_iterations)
