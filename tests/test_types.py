"""Tests for content blocks, messages and their wire forms."""

from parley.types import (
    Citation,
    CompactionBlock,
    Message,
    MessageParam,
    OpaqueBlock,
    RedactedThinkingBlock,
    TextBlock,
    ThinkingBlock,
    TokenCount,
    ToolResultBlock,
    ToolUseBlock,
    coerce_message,
    parse_content_block,
)

# ---------------------------------------------------------------------------
# TestParseContentBlock
# ---------------------------------------------------------------------------


class TestParseContentBlock:
    def test_known_variants(self):
        assert parse_content_block({"type": "text", "text": "hi"}) == TextBlock(text="hi")
        assert parse_content_block({"type": "tool_use", "id": "t", "name": "n", "input": {"a": 1}}) == ToolUseBlock(
            id="t", name="n", input={"a": 1}
        )
        assert parse_content_block({"type": "thinking", "thinking": "x", "signature": "s"}) == ThinkingBlock(
            thinking="x", signature="s"
        )
        assert parse_content_block({"type": "redacted_thinking", "data": "abc"}) == RedactedThinkingBlock(data="abc")
        assert parse_content_block({"type": "compaction", "content": "sum"}) == CompactionBlock(content="sum")

    def test_text_with_citations(self):
        block = parse_content_block({
            "type": "text",
            "text": "Grass is green.",
            "citations": [{"type": "char_location", "start_char_index": 0, "end_char_index": 15, "cited_text": "g"}],
        })
        assert block.citations == (Citation(start=0, end=15, cited_text="g"),)

    def test_unknown_variant_preserved(self):
        raw = {"type": "web_search_tool_result", "tool_use_id": "srv_1", "content": []}
        block = parse_content_block(raw)
        assert isinstance(block, OpaqueBlock)
        assert block.type == "web_search_tool_result"
        assert block.to_dict() == raw

    def test_missing_type(self):
        block = parse_content_block({"text": "?"})
        assert isinstance(block, OpaqueBlock)
        assert block.type == "unknown"


# ---------------------------------------------------------------------------
# TestMessages
# ---------------------------------------------------------------------------


class TestMessages:
    def test_message_param_wire_form(self):
        param = MessageParam.user([
            TextBlock(text="Here you go"),
            ToolResultBlock(tool_use_id="t1", content="42"),
        ])
        assert param.to_dict() == {
            "role": "user",
            "content": [
                {"type": "text", "text": "Here you go"},
                {"type": "tool_result", "tool_use_id": "t1", "content": "42"},
            ],
        }

    def test_coerce_dict(self):
        param = coerce_message({"role": "assistant", "content": [{"type": "text", "text": "hi"}]})
        assert param == MessageParam.assistant([TextBlock(text="hi")])

    def test_message_accessors(self):
        message = Message.from_dict({
            "id": "msg_1",
            "model": "m",
            "content": [
                {"type": "thinking", "thinking": "hmm", "signature": ""},
                {"type": "text", "text": "Hello "},
                {"type": "text", "text": "world"},
                {"type": "tool_use", "id": "t", "name": "calc", "input": {}},
            ],
            "stop_reason": "tool_use",
            "usage": {"input_tokens": 5, "output_tokens": 7},
        })
        assert message.tool_use_requested
        assert message.text == "Hello world"
        assert len(message.thinking_blocks) == 1
        assert [b.name for b in message.tool_use_blocks] == ["calc"]
        assert message.usage.output_tokens == 7

    def test_text_empty_without_text_blocks(self):
        assert Message(id="m", model="m").text == ""

    def test_parsed_output(self):
        assert Message(id="m", model="m", content=[TextBlock(text='{"ok": true}')]).parsed_output() == {"ok": True}
        assert Message(id="m", model="m", content=[TextBlock(text="nope")]).parsed_output() is None

    def test_token_count(self):
        count = TokenCount.from_dict({"input_tokens": 100, "cache_creation_input_tokens": 20})
        assert count.total_billable_tokens == 120
