"""Exception hierarchy for the Messages API client.

Status errors are raised by the transport for non-2xx responses; the
tool loop lets them propagate so callers can apply their own retry policy.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any


class ParleyError(Exception):
    """Base class for every error raised by parley."""


class APIError(ParleyError):
    """An error reported by (or while talking to) the API."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        body: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body
        self.headers = dict(headers) if headers else {}


class BadRequestError(APIError):
    pass


class AuthenticationError(APIError):
    pass


class PermissionDeniedError(APIError):
    pass


class NotFoundError(APIError):
    pass


class ConflictError(APIError):
    pass


class UnprocessableEntityError(APIError):
    pass


class RateLimitError(APIError):
    def __init__(
        self,
        message: str,
        status: int | None = None,
        body: str | None = None,
        headers: Mapping[str, str] | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, status, body, headers)
        self.retry_after = retry_after


class InternalServerError(APIError):
    pass


class APIConnectionError(APIError):
    """The request never produced a response (DNS, refused, reset...)."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class APITimeoutError(APIConnectionError):
    pass


class StreamError(APIError):
    """In-stream ``error`` event (HTTP 200 but the body reports a failure)."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(f"{kind}: {message}")
        self.kind = kind


class StreamConsumedError(ParleyError):
    """A MessageStream was iterated a second time."""


_STATUS_ERRORS: dict[int, type[APIError]] = {
    400: BadRequestError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
    422: UnprocessableEntityError,
}


def _error_message(body: str) -> str:
    try:
        data: Any = json.loads(body)
    except ValueError:
        return body
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return body


def error_for_response(
    status: int,
    body: str,
    headers: Mapping[str, str] | None = None,
) -> APIError:
    """Build the APIError subclass matching a failed HTTP response."""
    headers = headers or {}
    message = _error_message(body)

    if status == 429:
        retry_after = headers.get("retry-after")
        return RateLimitError(
            message,
            status,
            body,
            headers,
            retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
        )
    if status in _STATUS_ERRORS:
        return _STATUS_ERRORS[status](message, status, body, headers)
    if status >= 500:
        return InternalServerError(message, status, body, headers)
    return APIError(message, status, body, headers)
