"""Locally executed tools and the single point where their calls are run.

A tool is a name, a description, a JSON Schema for its input and a
callable from the parsed input dict to a text result. invoke_tool()
turns every call into a ToolOutcome: raised exceptions and unknown tool
names become error outcomes instead of propagating into the loop.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from parley.types import ToolResultBlock, ToolUseBlock

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


def _empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


class Tool:
    """Base class for tools the model may call.

    Subclasses set ``name``, ``description`` and ``input_schema`` and
    implement call(). Without an ``input_schema`` the tool takes an empty
    object; each definition gets its own copy of that schema.
    """

    name: str = ""
    description: str = ""
    input_schema: dict[str, Any] | None = None

    def call(self, payload: dict[str, Any]) -> str:
        raise NotImplementedError(f"Tool {self.name!r} has no call() implementation")

    def to_definition(self) -> dict[str, Any]:
        """Tool definition in Messages API format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema if self.input_schema is not None else _empty_schema(),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def _as_text(result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    if isinstance(result, (dict, list)):
        return json.dumps(result)
    return str(result)


class FunctionTool(Tool):
    """Inline tool: the handler receives the raw input dict."""

    def __init__(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any],
        handler: Callable[[dict[str, Any]], Any],
    ) -> None:
        self.name = name
        self.description = description
        self.input_schema = input_schema
        self._handler = handler

    def call(self, payload: dict[str, Any]) -> str:
        return _as_text(self._handler(payload))


def _close_objects(schema: Any) -> None:
    """Set additionalProperties: false on every object schema, in place."""
    if isinstance(schema, dict):
        if schema.get("type") == "object":
            schema.setdefault("additionalProperties", False)
        for value in schema.values():
            _close_objects(value)
    elif isinstance(schema, list):
        for item in schema:
            _close_objects(item)


class ModelTool(Tool):
    """Typed tool: input schema comes from a pydantic model.

    The payload is validated into ``input_model`` before the handler runs,
    so the handler receives a model instance instead of a dict. Validation
    failures surface as tool errors like any other exception.
    """

    def __init__(
        self,
        name: str,
        description: str,
        input_model: type[BaseModel],
        handler: Callable[[Any], Any],
    ) -> None:
        self.name = name
        self.description = description
        self.input_model = input_model
        self._handler = handler
        schema = input_model.model_json_schema()
        _close_objects(schema)
        self.input_schema = schema

    def call(self, payload: dict[str, Any]) -> str:
        return _as_text(self._handler(self.input_model.model_validate(payload)))


def tool(
    name: str | None = None,
    description: str | None = None,
    *,
    input_model: type[BaseModel] | None = None,
    input_schema: dict[str, Any] | None = None,
) -> Callable[[Callable[..., Any]], Tool]:
    """Decorator building a Tool from a function.

    Name defaults to the function name, description to its docstring.
    With ``input_model`` the result is a ModelTool; otherwise a
    FunctionTool using ``input_schema`` (an empty object schema if omitted).
    """

    def wrap(func: Callable[..., Any]) -> Tool:
        tool_name = name or func.__name__
        tool_description = description or inspect.getdoc(func) or ""
        if input_model is not None:
            return ModelTool(tool_name, tool_description, input_model, func)
        return FunctionTool(
            tool_name,
            tool_description,
            input_schema or _empty_schema(),
            func,
        )

    return wrap


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolOutcome:
    """Result of running one tool call: text content or error text."""

    content: str
    is_error: bool = False

    @classmethod
    def ok(cls, content: str) -> ToolOutcome:
        return cls(content=content)

    @classmethod
    def error(cls, content: str) -> ToolOutcome:
        return cls(content=content, is_error=True)

    def to_result_block(self, tool_use_id: str) -> ToolResultBlock:
        return ToolResultBlock(tool_use_id=tool_use_id, content=self.content, is_error=self.is_error)


def index_tools(tools: list[Tool | dict[str, Any]]) -> dict[str, Tool]:
    """Map names to callable tools; the first tool with a name wins.

    Plain dicts are server-side tool definitions and are not callable.
    """
    index: dict[str, Tool] = {}
    for t in tools:
        if isinstance(t, Tool):
            index.setdefault(t.name, t)
    return index


def invoke_tool(tools: Mapping[str, Tool], tool_use: ToolUseBlock) -> ToolOutcome:
    """Run the tool a tool_use block asks for and capture the outcome."""
    handler = tools.get(tool_use.name)
    if handler is None:
        logger.warning("Model requested unknown tool %r (id=%s)", tool_use.name, tool_use.id)
        return ToolOutcome.error(f"Unknown tool: {tool_use.name}")
    try:
        return ToolOutcome.ok(handler.call(tool_use.input))
    except Exception as e:
        logger.exception("Tool dispatch error for %s", tool_use.name)
        return ToolOutcome.error(f"Error: {e}")
