"""Tool execution -- local tools, the tool loop and history compaction.

Public API:
    Tool, FunctionTool, ModelTool, tool - Tool definitions
    ToolOutcome, invoke_tool             - Captured result of one tool call
    ToolRunner                           - The agentic request/dispatch loop
    ConversationState, FinishReason      - Run state and terminal reason
    CompactionConfig, Compactor          - Automatic history compaction
"""

from parley.tools.compaction import CompactionConfig, Compactor, render_transcript
from parley.tools.runner import RunnerParams, ToolRunner
from parley.tools.state import ConversationState, FinishReason
from parley.tools.tool import (
    FunctionTool,
    ModelTool,
    Tool,
    ToolOutcome,
    index_tools,
    invoke_tool,
    tool,
)

__all__ = [
    "CompactionConfig",
    "Compactor",
    "ConversationState",
    "FinishReason",
    "FunctionTool",
    "ModelTool",
    "RunnerParams",
    "Tool",
    "ToolOutcome",
    "ToolRunner",
    "index_tools",
    "invoke_tool",
    "render_transcript",
    "tool",
]
