"""Tests for conversation compaction.

Tests cover:
- CompactionConfig validation
- render_transcript() markers for tool blocks
- maybe_compact() threshold, minimum length and fail-open behaviour
- compact() output shape and the on_compact callback
"""

from unittest.mock import MagicMock

import pytest

from parley.tools.compaction import (
    ACKNOWLEDGEMENT,
    MAX_MARKER_CHARS,
    SUMMARY_MARKER,
    SUMMARY_PROMPT,
    CompactionConfig,
    Compactor,
    render_transcript,
)
from parley.types import (
    CompactionBlock,
    Message,
    MessageParam,
    TextBlock,
    ThinkingBlock,
    TokenCount,
    ToolResultBlock,
    ToolUseBlock,
)

MODEL = "claude-test"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _history(n: int) -> list[MessageParam]:
    return [
        MessageParam.user(f"question {i}") if i % 2 == 0 else MessageParam.assistant(f"answer {i}")
        for i in range(n)
    ]


def _summary(text: str = "They talked about the weather.") -> Message:
    return Message(id="msg_sum", model=MODEL, content=[TextBlock(text=text)], stop_reason="end_turn")


def _make_client(tokens=(20000, 500), summary: Message | None = None) -> MagicMock:
    client = MagicMock()
    client.messages.count_tokens.side_effect = [TokenCount(input_tokens=t) for t in tokens]
    client.messages.create.return_value = summary or _summary()
    return client


def _compactor(client, threshold: int = 10000, on_compact=None) -> Compactor:
    return Compactor(client, MODEL, CompactionConfig.enabled_with(threshold, on_compact))


# ---------------------------------------------------------------------------
# TestCompactionConfig
# ---------------------------------------------------------------------------


class TestCompactionConfig:
    def test_disabled_by_default(self):
        config = CompactionConfig()
        assert config.enabled is False
        assert config.token_threshold == 10000

    def test_enabled_with(self):
        config = CompactionConfig.enabled_with(5000)
        assert config.enabled is True
        assert config.token_threshold == 5000

    @pytest.mark.parametrize("threshold", [0, -1])
    def test_threshold_must_be_positive(self, threshold):
        with pytest.raises(ValueError, match="token_threshold"):
            CompactionConfig(enabled=True, token_threshold=threshold)


# ---------------------------------------------------------------------------
# TestRenderTranscript
# ---------------------------------------------------------------------------


class TestRenderTranscript:
    def test_plain_text(self):
        text = render_transcript([MessageParam.user("Hi"), MessageParam.assistant("Hello")])
        assert text == "User: Hi\n\nAssistant: Hello"

    def test_tool_blocks_become_markers(self):
        messages = [
            MessageParam.assistant([
                TextBlock(text="Checking."),
                ToolUseBlock(id="t1", name="get_weather", input={"city": "Paris"}),
            ]),
            MessageParam.user([ToolResultBlock(tool_use_id="t1", content="18C", is_error=False)]),
        ]
        text = render_transcript(messages)
        assert 'Assistant: Checking.\n[tool_use get_weather {"city": "Paris"}]' in text
        assert "User: [tool_result t1: 18C]" in text

    def test_error_result_flagged(self):
        messages = [MessageParam.user([ToolResultBlock(tool_use_id="t9", content="boom", is_error=True)])]
        assert render_transcript(messages) == "User: [tool_result t9 (error): boom]"

    def test_markers_truncated(self):
        big = "x" * (MAX_MARKER_CHARS * 2)
        messages = [MessageParam.user([ToolResultBlock(tool_use_id="t", content=big)])]
        line = render_transcript(messages)[len("User: "):]
        assert len(line) == MAX_MARKER_CHARS + 3
        assert line.endswith("...")

    def test_thinking_and_compaction(self):
        messages = [
            MessageParam.assistant([
                ThinkingBlock(thinking="secret", signature="s"),
                CompactionBlock(content="old summary"),
            ])
        ]
        text = render_transcript(messages)
        assert "secret" not in text
        assert "[compaction old summary]" in text


# ---------------------------------------------------------------------------
# TestMaybeCompact
# ---------------------------------------------------------------------------


class TestMaybeCompact:
    def test_compacts_six_messages_keeping_tail(self):
        history = _history(6)
        client = _make_client()
        compacted = _compactor(client).maybe_compact(history)

        assert len(compacted) == 4
        assert compacted[0].role == "user"
        assert compacted[0].content == f"{SUMMARY_MARKER}\nThey talked about the weather."
        assert compacted[1] == MessageParam.assistant(ACKNOWLEDGEMENT)
        assert compacted[2:] == history[-2:]

    def test_summary_request(self):
        client = _make_client()
        _compactor(client).maybe_compact(_history(4))

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == MODEL
        assert kwargs["max_tokens"] == 2048
        [prompt] = kwargs["messages"]
        assert prompt.content.startswith(SUMMARY_PROMPT)
        assert "User: question 0" in prompt.content

    def test_under_threshold_unchanged(self):
        history = _history(6)
        client = _make_client(tokens=(9000,))
        assert _compactor(client).maybe_compact(history) is history
        client.messages.create.assert_not_called()

    def test_fewer_than_three_messages_never_counted(self):
        client = _make_client()
        history = _history(2)
        assert _compactor(client).maybe_compact(history) is history
        client.messages.count_tokens.assert_not_called()

    def test_disabled(self):
        client = _make_client()
        compactor = Compactor(client, MODEL, CompactionConfig())
        assert compactor.maybe_compact(_history(6)) == _history(6)
        assert compactor.should_compact(_history(6)) is False
        client.messages.count_tokens.assert_not_called()

    def test_counting_failure_fails_open(self):
        client = MagicMock()
        client.messages.count_tokens.side_effect = RuntimeError("503")
        history = _history(6)
        assert _compactor(client).maybe_compact(history) is history
        client.messages.create.assert_not_called()

    def test_summary_failure_fails_open(self):
        client = _make_client()
        client.messages.create.side_effect = RuntimeError("overloaded")
        history = _history(6)
        assert _compactor(client).maybe_compact(history) is history

    def test_empty_summary_fails_open(self):
        client = _make_client(summary=_summary("   "))
        history = _history(6)
        assert _compactor(client).maybe_compact(history) is history

    def test_counts_once_before_compacting(self):
        client = _make_client()
        _compactor(client).maybe_compact(_history(6))
        # once for the decision, once for the compacted result
        assert client.messages.count_tokens.call_count == 2


# ---------------------------------------------------------------------------
# TestOnCompact
# ---------------------------------------------------------------------------


class TestOnCompact:
    def test_callback_receives_counts(self):
        seen = []
        client = _make_client(tokens=(20000, 800))
        _compactor(client, on_compact=lambda before, after: seen.append((before, after))).maybe_compact(
            _history(6)
        )
        assert seen == [(20000, 800)]

    def test_unmeasured_after_reported_as_zero(self):
        seen = []
        client = MagicMock()
        client.messages.count_tokens.side_effect = [TokenCount(input_tokens=20000), RuntimeError("boom")]
        client.messages.create.return_value = _summary()
        compacted = _compactor(client, on_compact=lambda b, a: seen.append((b, a))).maybe_compact(_history(6))
        assert len(compacted) == 4
        assert seen == [(20000, 0)]

    def test_callback_error_swallowed(self):
        def explode(before, after):
            raise RuntimeError("callback bug")

        client = _make_client()
        compacted = _compactor(client, on_compact=explode).maybe_compact(_history(6))
        assert len(compacted) == 4
