"""Tests for error kinds, classification and short messages."""

from __future__ import annotations

import httpx
import pytest

from vibeflow.resilience.errors import (
    AuthorizationError,
    ConfigurationError,
    ConnectionLostError,
    ErrorKind,
    GenerationAborted,
    GenerationError,
    InvalidRequestError,
    MidStreamError,
    RateLimitedError,
    TaskFailedError,
    TaskTimeoutError,
    TransientTransportError,
    classify_error,
    error_for_status,
    is_retryable,
    kind_for_status,
    short_error_message,
)


class _StatusCodeError(Exception):
    """Exception with a status_code attribute."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


# ── classify_error ───────────────────────────────────────────


def test_typed_error_keeps_its_kind() -> None:
    assert classify_error(MidStreamError("x")) is ErrorKind.MID_STREAM
    assert classify_error(TaskTimeoutError("x")) is ErrorKind.TIMEOUT


def test_connection_lost_is_transient() -> None:
    err = ConnectionLostError("lost")
    assert isinstance(err, TransientTransportError)
    assert classify_error(err) is ErrorKind.TRANSIENT_TRANSPORT


def test_abort_is_not_a_generation_error() -> None:
    assert not issubclass(GenerationAborted, GenerationError)
    assert not is_retryable(GenerationAborted())


def test_classify_status_code_attribute() -> None:
    assert classify_error(_StatusCodeError("x", 429)) is ErrorKind.RATE_LIMITED
    assert classify_error(_StatusCodeError("x", 401)) is ErrorKind.AUTHORIZATION
    assert classify_error(_StatusCodeError("x", 503)) is (
        ErrorKind.TRANSIENT_TRANSPORT
    )


def test_classify_httpx_transport_error() -> None:
    err = httpx.ConnectError("refused")
    assert classify_error(err) is ErrorKind.TRANSIENT_TRANSPORT


def test_classify_timeout_error_type() -> None:
    """TimeoutError instance → transient (no string matching)."""
    assert classify_error(TimeoutError()) is ErrorKind.TRANSIENT_TRANSPORT


def test_classify_string_fallback_rate_limit() -> None:
    assert classify_error(Exception("Rate limit reached")) is (
        ErrorKind.RATE_LIMITED
    )


def test_classify_string_fallback_network() -> None:
    assert classify_error(Exception("Failed to fetch")) is (
        ErrorKind.TRANSIENT_TRANSPORT
    )


def test_classify_unknown() -> None:
    assert classify_error(ValueError("bad value")) is ErrorKind.UNKNOWN


# ── retryability ─────────────────────────────────────────────


@pytest.mark.parametrize(
    "error",
    [
        RateLimitedError("slow down"),
        TransientTransportError("reset"),
        ConnectionLostError("gone"),
    ],
)
def test_retryable_kinds(error: GenerationError) -> None:
    assert error.retryable
    assert is_retryable(error)


@pytest.mark.parametrize(
    "error",
    [
        ConfigurationError("no key"),
        AuthorizationError("bad key"),
        InvalidRequestError("bad body"),
        MidStreamError("boom"),
        TaskFailedError("failed"),
        TaskTimeoutError("too slow"),
    ],
)
def test_fatal_kinds(error: GenerationError) -> None:
    assert not error.retryable
    assert not is_retryable(error)


# ── status mapping ───────────────────────────────────────────


def test_kind_for_status() -> None:
    assert kind_for_status(400) is ErrorKind.INVALID_REQUEST
    assert kind_for_status(403) is ErrorKind.AUTHORIZATION
    assert kind_for_status(413) is ErrorKind.INVALID_REQUEST
    assert kind_for_status(529) is ErrorKind.TRANSIENT_TRANSPORT


def test_error_for_status_builds_typed_error() -> None:
    err = error_for_status(401, "Invalid API key", provider="openai")
    assert isinstance(err, AuthorizationError)
    assert err.message == "Invalid API key"
    assert err.status_code == 401
    assert err.provider == "openai"


def test_error_for_status_503_is_transient() -> None:
    err = error_for_status(503, "overloaded")
    assert isinstance(err, TransientTransportError)
    assert err.retryable


# ── short_error_message ──────────────────────────────────────

_TABLE = {"context_length_exceeded": "Prompt too long", "429": "Slow down"}


def test_short_message_prefers_first_known_key() -> None:
    msg = short_error_message(_TABLE, "context_length_exceeded", 400)
    assert msg == "Prompt too long"


def test_short_message_falls_back_to_status() -> None:
    assert short_error_message(_TABLE, "unknown_code", 429) == "Slow down"


def test_short_message_uses_short_detail() -> None:
    msg = short_error_message(_TABLE, "nope", detail="Quota gone")
    assert msg == "Quota gone"


def test_short_message_truncates_long_detail() -> None:
    msg = short_error_message(_TABLE, "nope", detail="x" * 150)
    assert msg == "x" * 80 + "..."


def test_short_message_without_detail() -> None:
    assert short_error_message(_TABLE, None, 418) == "Error: 418"
    assert short_error_message(_TABLE) == "Unknown error"
