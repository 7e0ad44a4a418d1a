"""parley -- Messages API client with a streaming event engine and tool loop.

Public API:
    Client            - HTTP client; client.messages.create/stream/count_tokens
    ToolRunner        - Agentic loop that executes the model's tool calls
    CompactionConfig  - Automatic history compaction for long runs
    tool              - Decorator turning a function into a Tool
    Settings          - Configuration (PARLEY_ env prefix)
    configure_logging - basicConfig from Settings.log_level
"""

from __future__ import annotations

import logging

from parley.client import Client, Messages
from parley.config import Settings
from parley.errors import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AuthenticationError,
    BadRequestError,
    ConflictError,
    InternalServerError,
    NotFoundError,
    ParleyError,
    PermissionDeniedError,
    RateLimitError,
    StreamConsumedError,
    StreamError,
    UnprocessableEntityError,
)
from parley.streaming import MessageStream, iter_events
from parley.tools import (
    CompactionConfig,
    FinishReason,
    FunctionTool,
    ModelTool,
    Tool,
    ToolOutcome,
    ToolRunner,
    tool,
)
from parley.types import (
    Citation,
    Message,
    MessageParam,
    TextBlock,
    TokenCount,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)


def configure_logging(settings: Settings | None = None) -> None:
    """Configure root logging from Settings.log_level (for scripts and CLIs)."""
    settings = settings or Settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


__all__ = [
    "APIConnectionError",
    "APIError",
    "APITimeoutError",
    "AuthenticationError",
    "BadRequestError",
    "Citation",
    "Client",
    "CompactionConfig",
    "ConflictError",
    "FinishReason",
    "FunctionTool",
    "InternalServerError",
    "Message",
    "MessageParam",
    "MessageStream",
    "Messages",
    "ModelTool",
    "NotFoundError",
    "ParleyError",
    "PermissionDeniedError",
    "RateLimitError",
    "Settings",
    "StreamConsumedError",
    "StreamError",
    "TextBlock",
    "TokenCount",
    "Tool",
    "ToolOutcome",
    "ToolResultBlock",
    "ToolRunner",
    "ToolUseBlock",
    "UnprocessableEntityError",
    "Usage",
    "configure_logging",
    "iter_events",
    "tool",
]
