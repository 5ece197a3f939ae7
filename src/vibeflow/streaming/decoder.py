"""Incremental decoder for streamed provider responses.

Network reads split the body at arbitrary byte offsets: mid-line,
mid-JSON and mid multi-byte character. The decoder buffers text until
a newline is seen, so a payload is only parsed once its line is
complete. Two framings are supported:

- ``sse``: ``data: {...}`` lines, terminated by ``data: [DONE]``
- ``ndjson``: one JSON object per line

Lines that fail to parse are skipped. Payloads that carry an error
indicator raise :class:`MidStreamError`: a 200 response can still fail
part-way through.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from typing import Any

from vibeflow.constants import SSE_DATA_PREFIX, SSE_DONE_SENTINEL, StreamFraming
from vibeflow.resilience.errors import MidStreamError

logger = logging.getLogger(__name__)

ErrorDescriber = Callable[[Any], str]

_DONE = object()


def describe_error_field(error: Any) -> str:
    """Default message for a payload's ``error`` field."""
    if isinstance(error, dict):
        message = error.get("message")
        if message:
            return str(message)
        code = error.get("code") or error.get("type")
        if code:
            return f"Error: {code}"
        return "Stream error"
    return str(error)


async def iter_payloads(
    chunks: AsyncIterable[bytes],
    *,
    framing: StreamFraming = StreamFraming.SSE,
    provider: str | None = None,
    describe_error: ErrorDescriber = describe_error_field,
) -> AsyncIterator[dict[str, Any]]:
    """Yield each complete JSON object found in the byte stream."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        while (newline := buffer.find("\n")) != -1:
            line, buffer = buffer[:newline], buffer[newline + 1:]
            payload = _parse_line(line, framing)
            if payload is _DONE:
                return
            if payload is not None:
                _raise_for_stream_error(payload, provider, describe_error)
                yield payload

    # The final line may arrive without a trailing newline
    buffer += decoder.decode(b"", final=True)
    payload = _parse_line(buffer, framing)
    if payload is not None and payload is not _DONE:
        _raise_for_stream_error(payload, provider, describe_error)
        yield payload


def _parse_line(line: str, framing: StreamFraming) -> Any:
    line = line.strip()
    if not line:
        return None
    if framing is StreamFraming.SSE:
        if not line.startswith(SSE_DATA_PREFIX):
            # comments (":"), event:, id: and retry: fields
            return None
        line = line[len(SSE_DATA_PREFIX):].strip()
        if line == SSE_DONE_SENTINEL:
            return _DONE
    try:
        payload = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("event=stream_line_skipped chars=%d", len(line))
        return None
    if not isinstance(payload, dict):
        logger.debug("event=stream_non_object_skipped")
        return None
    return payload


def _raise_for_stream_error(
    payload: dict[str, Any],
    provider: str | None,
    describe_error: ErrorDescriber,
) -> None:
    error = payload.get("error")
    if error:
        code = error.get("code") if isinstance(error, dict) else None
        raise MidStreamError(
            describe_error(error),
            provider=provider,
            code=str(code) if code is not None else None,
        )
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, dict) and first.get("finish_reason") == "error":
            raise MidStreamError(
                "Stream terminated with an error", provider=provider
            )
