"""Error taxonomy and classification for generation failures.

Every adapter failure surfaces as a :class:`GenerationError` subclass
carrying an :class:`ErrorKind`. Kinds drive two decisions:

- whether the retry controller may try the connection again
- which short, human-readable message the caller shows

User cancellation is NOT an error. It raises :class:`GenerationAborted`,
which sits outside the ``GenerationError`` hierarchy so no error path
ever reports it.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import Any

import httpx

from vibeflow.constants import (
    SHORT_ERROR_MAX_CHARS,
    SHORT_ERROR_PREVIEW_CHARS,
)


class ErrorKind(StrEnum):
    CONFIGURATION = "configuration"  # missing/invalid credential
    AUTHORIZATION = "authorization"  # 401, 403
    RATE_LIMITED = "rate_limited"  # 429, retryable
    TRANSIENT_TRANSPORT = "transient_transport"  # 5xx or network, retryable
    INVALID_REQUEST = "invalid_request"  # other 4xx
    MID_STREAM = "mid_stream"  # error reported inside a 200 stream
    TASK_FAILED = "task_failed"  # background task reported failure
    TIMEOUT = "timeout"  # background task exceeded its ceiling
    UNKNOWN = "unknown"  # unclassified, do NOT retry


_RETRYABLE = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.TRANSIENT_TRANSPORT,
})


class GenerationError(Exception):
    """Base class for every reportable generation failure."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.code = code

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE


class ConfigurationError(GenerationError):
    kind = ErrorKind.CONFIGURATION


class AuthorizationError(GenerationError):
    kind = ErrorKind.AUTHORIZATION


class RateLimitedError(GenerationError):
    kind = ErrorKind.RATE_LIMITED


class TransientTransportError(GenerationError):
    kind = ErrorKind.TRANSIENT_TRANSPORT


class ConnectionLostError(TransientTransportError):
    """Background-task monitoring gave up after repeated poll failures.

    The remote task may still be running.
    """


class InvalidRequestError(GenerationError):
    kind = ErrorKind.INVALID_REQUEST


class MidStreamError(GenerationError):
    kind = ErrorKind.MID_STREAM


class TaskFailedError(GenerationError):
    kind = ErrorKind.TASK_FAILED


class TaskTimeoutError(GenerationError):
    kind = ErrorKind.TIMEOUT


class GenerationAborted(Exception):
    """The caller cancelled the generation. Never reported as an error."""

    def __init__(self, message: str = "Aborted") -> None:
        super().__init__(message)


def classify_error(error: BaseException) -> ErrorKind:
    """Classify an error to determine handling strategy.

    Checks typed errors first, then structured attributes
    (status_code), then transport types, and falls back to string
    matching for untyped exceptions.
    """
    # 1. Already classified
    if isinstance(error, GenerationError):
        return error.kind
    if isinstance(error, GenerationAborted):
        return ErrorKind.UNKNOWN

    # 2. Check for structured status_code attribute
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return kind_for_status(status_code)

    # 3. Transport failures (connect, read, protocol, timeouts)
    if isinstance(
        error,
        (
            httpx.TransportError,
            ConnectionError,
            TimeoutError,
            asyncio.TimeoutError,
        ),
    ):
        return ErrorKind.TRANSIENT_TRANSPORT

    # 4. Fall back to string matching for untyped exceptions
    msg = str(error).lower()

    if "429" in msg or "rate limit" in msg or "rate_limit" in msg:
        return ErrorKind.RATE_LIMITED
    if any(code in msg for code in ("500", "502", "503", "504")):
        return ErrorKind.TRANSIENT_TRANSPORT
    if (
        "failed to fetch" in msg
        or "network error" in msg
        or "econnreset" in msg
        or "connection" in msg
    ):
        return ErrorKind.TRANSIENT_TRANSPORT
    if "401" in msg or "403" in msg:
        return ErrorKind.AUTHORIZATION

    return ErrorKind.UNKNOWN


def kind_for_status(status_code: int) -> ErrorKind:
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code in (401, 403):
        return ErrorKind.AUTHORIZATION
    if 400 <= status_code < 500:
        return ErrorKind.INVALID_REQUEST
    if 500 <= status_code < 600:
        return ErrorKind.TRANSIENT_TRANSPORT
    return ErrorKind.UNKNOWN


def is_retryable(error: BaseException) -> bool:
    """Return True if the error category supports retry."""
    return classify_error(error) in _RETRYABLE


_KIND_TO_CLASS: dict[ErrorKind, type[GenerationError]] = {
    ErrorKind.RATE_LIMITED: RateLimitedError,
    ErrorKind.AUTHORIZATION: AuthorizationError,
    ErrorKind.INVALID_REQUEST: InvalidRequestError,
    ErrorKind.TRANSIENT_TRANSPORT: TransientTransportError,
}


def error_for_status(
    status_code: int,
    message: str,
    *,
    provider: str | None = None,
    code: str | None = None,
) -> GenerationError:
    """Build the typed error for a non-success HTTP status."""
    cls = _KIND_TO_CLASS.get(kind_for_status(status_code), GenerationError)
    return cls(
        message, provider=provider, status_code=status_code, code=code
    )


def short_error_message(
    table: dict[str, str],
    *keys: Any,
    detail: str | None = None,
) -> str:
    """Pick a short user-facing message for a provider failure.

    ``keys`` are tried in order (typically the machine-readable error
    code, then the HTTP status). When none is in ``table`` the
    provider's own ``detail`` is used, truncated when long.
    """
    for key in keys:
        if key is None:
            continue
        message = table.get(str(key))
        if message:
            return message
    if detail:
        if len(detail) < SHORT_ERROR_MAX_CHARS:
            return detail
        return detail[:SHORT_ERROR_PREVIEW_CHARS] + "..."
    first = next((k for k in keys if k is not None), None)
    return f"Error: {first}" if first is not None else "Unknown error"
