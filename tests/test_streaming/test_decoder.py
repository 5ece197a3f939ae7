"""Tests for the incremental SSE / NDJSON decoder."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import pytest

from vibeflow.constants import StreamFraming
from vibeflow.resilience.errors import MidStreamError
from vibeflow.streaming.decoder import describe_error_field, iter_payloads


async def _chunks(*parts: bytes) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


async def _collect(
    *parts: bytes, framing: StreamFraming = StreamFraming.SSE
) -> list[dict[str, Any]]:
    return [p async for p in iter_payloads(_chunks(*parts), framing=framing)]


class TestSseFraming:
    async def test_single_payload(self) -> None:
        assert await _collect(b'data: {"a": 1}\n\n') == [{"a": 1}]

    async def test_payload_split_across_reads(self) -> None:
        payloads = await _collect(b'data: {"te', b'xt": "hi"}\n', b"\n")
        assert payloads == [{"text": "hi"}]

    async def test_done_sentinel_split_across_reads(self) -> None:
        """The [DONE] marker is recognised even when split, and ends the stream."""
        payloads = await _collect(
            b'data: {"a": 1}\n\ndata: [DO',
            b'NE]\n\ndata: {"a": 2}\n\n',
        )
        assert payloads == [{"a": 1}]

    async def test_multibyte_character_split(self) -> None:
        encoded = 'data: {"t": "café"}\n'.encode()
        split = encoded.index(b"\xc3") + 1
        payloads = await _collect(encoded[:split], encoded[split:])
        assert payloads == [{"t": "café"}]

    async def test_ignores_comments_and_other_fields(self) -> None:
        payloads = await _collect(
            b": OPENROUTER PROCESSING\n\n",
            b"event: message\nid: 7\nretry: 100\n",
            b'data: {"ok": true}\n\n',
        )
        assert payloads == [{"ok": True}]

    async def test_invalid_json_skipped(self) -> None:
        payloads = await _collect(b"data: {not json\n", b'data: {"b": 2}\n')
        assert payloads == [{"b": 2}]

    async def test_non_object_skipped(self) -> None:
        assert await _collect(b"data: [1, 2]\n", b'data: "x"\n') == []

    async def test_remainder_flushed_without_trailing_newline(self) -> None:
        assert await _collect(b'data: {"last": 1}') == [{"last": 1}]

    async def test_crlf_line_endings(self) -> None:
        assert await _collect(b'data: {"a": 1}\r\n\r\n') == [{"a": 1}]


class TestNdjsonFraming:
    async def test_one_object_per_line(self) -> None:
        payloads = await _collect(
            b'{"a": 1}\n{"a"', b': 2}\n', framing=StreamFraming.NDJSON
        )
        assert payloads == [{"a": 1}, {"a": 2}]

    async def test_data_prefix_not_required(self) -> None:
        payloads = await _collect(b'{"x": 1}', framing=StreamFraming.NDJSON)
        assert payloads == [{"x": 1}]


class TestMidStreamErrors:
    async def test_error_field_raises(self) -> None:
        stream = iter_payloads(
            _chunks(
                b'data: {"a": 1}\n',
                b'data: {"error": {"message": "Overloaded", "code": 529}}\n',
            ),
            provider="openrouter",
        )
        assert await anext(stream) == {"a": 1}
        with pytest.raises(MidStreamError, match="Overloaded") as exc_info:
            await anext(stream)
        assert exc_info.value.code == "529"
        assert exc_info.value.provider == "openrouter"

    async def test_finish_reason_error_raises(self) -> None:
        with pytest.raises(MidStreamError):
            await _collect(
                b'data: {"choices": [{"finish_reason": "error"}]}\n'
            )

    async def test_custom_error_describer(self) -> None:
        stream = iter_payloads(
            _chunks(b'data: {"error": {"code": "server_error"}}\n'),
            describe_error=lambda err: f"mapped {err['code']}",
        )
        with pytest.raises(MidStreamError, match="mapped server_error"):
            await anext(stream)


def test_describe_error_field() -> None:
    assert describe_error_field({"message": "Nope"}) == "Nope"
    assert describe_error_field({"type": "overloaded_error"}) == (
        "Error: overloaded_error"
    )
    assert describe_error_field("plain") == "plain"
