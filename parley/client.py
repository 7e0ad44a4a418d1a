"""Synchronous Messages API client over httpx.

Client owns the HTTP connection pool, headers and retry policy;
client.messages exposes create(), stream() and count_tokens().
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Mapping
from typing import Any

import httpx

from parley.config import Settings
from parley.errors import APIConnectionError, APITimeoutError, error_for_response
from parley.streaming.stream import MessageStream
from parley.tools.tool import Tool
from parley.types import Message, MessageParam, TokenCount, coerce_message

logger = logging.getLogger(__name__)

USER_AGENT = "parley-python/0.1.0"
_RETRYABLE_STATUS = frozenset({408, 409, 429})


class Client:
    """Messages API client.

    Settings come from the environment (see parley.config.Settings) unless
    overridden by keyword. Pass ``http_client`` to supply a preconfigured
    httpx.Client (custom transport, proxies); the caller then owns it.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        settings: Settings | None = None,
        http_client: httpx.Client | None = None,
        default_headers: Mapping[str, str] | None = None,
    ) -> None:
        settings = settings or Settings()
        self._settings = settings

        api_key = api_key or settings.anthropic_api_key
        if not api_key:
            raise ValueError(
                "API key required. Set ANTHROPIC_API_KEY or pass api_key."
            )

        self._base_url = (base_url or settings.base_url).rstrip("/")
        self._max_retries = settings.max_retries if max_retries is None else max_retries
        self._initial_retry_delay = settings.initial_retry_delay
        self._max_retry_delay = settings.max_retry_delay
        self._headers: dict[str, str] = {
            "x-api-key": api_key,
            "anthropic-version": settings.api_version,
            "content-type": "application/json",
            "user-agent": USER_AGENT,
            **(default_headers or {}),
        }

        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(
            timeout=httpx.Timeout(timeout or settings.timeout),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )

        self.messages = Messages(self)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def post(
        self,
        path: str,
        body: dict[str, Any],
        stream: bool = False,
        extra_headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """POST JSON with retries; raises an APIError subclass on failure.

        With ``stream=True`` the body is left unread for the caller, who
        must close the response.
        """
        url = f"{self._base_url}{path}"
        headers = {**self._headers, **(extra_headers or {})}

        for attempt in range(self._max_retries + 1):
            retries_left = attempt < self._max_retries
            request = self._http.build_request("POST", url, json=body, headers=headers)
            try:
                response = self._http.send(request, stream=stream)
            except httpx.TimeoutException as e:
                if retries_left:
                    self._wait(attempt, None, f"timeout: {e}")
                    continue
                raise APITimeoutError(f"Request timed out: {e}") from e
            except httpx.TransportError as e:
                if retries_left:
                    self._wait(attempt, None, f"connection error: {e}")
                    continue
                raise APIConnectionError(f"Connection failed: {e}") from e

            if response.is_success:
                return response

            if retries_left and self._should_retry(response):
                response.close()
                self._wait(attempt, response, f"HTTP {response.status_code}")
                continue

            response.read()
            response.close()
            raise error_for_response(response.status_code, response.text, response.headers)

        raise AssertionError("unreachable: retry loop always returns or raises")

    def _should_retry(self, response: httpx.Response) -> bool:
        override = response.headers.get("x-should-retry")
        if override is not None:
            return override.lower() == "true"
        status = response.status_code
        return status in _RETRYABLE_STATUS or status >= 500

    def _wait(self, attempt: int, response: httpx.Response | None, reason: str) -> None:
        delay = self._backoff_delay(attempt, response)
        logger.warning(
            "API request failed (%s), retrying in %.2fs (attempt %d/%d)",
            reason,
            delay,
            attempt + 1,
            self._max_retries,
        )
        time.sleep(delay)

    def _backoff_delay(self, attempt: int, response: httpx.Response | None) -> float:
        """Server hint if present, else initial * (attempt+1)^2 * jitter, capped."""
        if response is not None:
            retry_ms = response.headers.get("retry-after-ms")
            if retry_ms and retry_ms.isdigit():
                return int(retry_ms) / 1000
            retry_after = response.headers.get("retry-after")
            if retry_after and retry_after.isdigit():
                return float(retry_after)

        jitter = 1.0 - 0.25 * random.random()
        delay = self._initial_retry_delay * (attempt + 1) ** 2 * jitter
        return min(max(delay, 0.0), self._max_retry_delay)


def _message_payload(messages: list[MessageParam | dict[str, Any]]) -> list[dict[str, Any]]:
    return [coerce_message(m).to_dict() for m in messages]


def _tool_payload(tools: list[Tool | dict[str, Any]] | None) -> list[dict[str, Any]] | None:
    if not tools:
        return None
    return [t.to_definition() if isinstance(t, Tool) else t for t in tools]


class Messages:
    """The /v1/messages resource."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def _build_payload(
        self,
        model: str,
        messages: list[MessageParam | dict[str, Any]],
        **options: Any,
    ) -> dict[str, Any]:
        """Request body shared by create(), stream() and count_tokens()."""
        payload: dict[str, Any] = {
            "model": model,
            "messages": _message_payload(messages),
        }
        tools = _tool_payload(options.pop("tools", None))
        if tools:
            payload["tools"] = tools
        for key, value in options.items():
            if value is not None:
                payload[key] = value
        return payload

    def create(
        self,
        model: str,
        max_tokens: int,
        messages: list[MessageParam | dict[str, Any]],
        system: str | list[dict[str, Any]] | None = None,
        tools: list[Tool | dict[str, Any]] | None = None,
        tool_choice: dict[str, Any] | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        top_k: int | None = None,
        stop_sequences: list[str] | None = None,
        metadata: dict[str, str] | None = None,
        thinking: dict[str, Any] | None = None,
    ) -> Message:
        payload = self._build_payload(
            model,
            messages,
            max_tokens=max_tokens,
            system=system,
            tools=tools,
            tool_choice=tool_choice,
            temperature=temperature,
            top_p=top_p,
            top_k=top_k,
            stop_sequences=stop_sequences,
            metadata=metadata,
            thinking=thinking,
        )
        response = self._client.post("/v1/messages", payload)
        return Message.from_dict(response.json())

    def stream(
        self,
        model: str,
        max_tokens: int,
        messages: list[MessageParam | dict[str, Any]],
        system: str | list[dict[str, Any]] | None = None,
        tools: list[Tool | dict[str, Any]] | None = None,
        tool_choice: dict[str, Any] | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        top_k: int | None = None,
        stop_sequences: list[str] | None = None,
        metadata: dict[str, str] | None = None,
        thinking: dict[str, Any] | None = None,
    ) -> MessageStream:
        """Open a streamed call. Iterate the result (once) for events.

        Use it as a context manager, or call close(), to release the
        connection when stopping early.
        """
        payload = self._build_payload(
            model,
            messages,
            max_tokens=max_tokens,
            system=system,
            tools=tools,
            tool_choice=tool_choice,
            temperature=temperature,
            top_p=top_p,
            top_k=top_k,
            stop_sequences=stop_sequences,
            metadata=metadata,
            thinking=thinking,
            stream=True,
        )
        response = self._client.post(
            "/v1/messages",
            payload,
            stream=True,
            extra_headers={"accept": "text/event-stream"},
        )
        return MessageStream(response.iter_lines(), close=response.close)

    def count_tokens(
        self,
        model: str,
        messages: list[MessageParam | dict[str, Any]],
        system: str | list[dict[str, Any]] | None = None,
        tools: list[Tool | dict[str, Any]] | None = None,
        tool_choice: dict[str, Any] | None = None,
        thinking: dict[str, Any] | None = None,
    ) -> TokenCount:
        payload = self._build_payload(
            model,
            messages,
            system=system,
            tools=tools,
            tool_choice=tool_choice,
            thinking=thinking,
        )
        response = self._client.post("/v1/messages/count_tokens", payload)
        return TokenCount.from_dict(response.json())
