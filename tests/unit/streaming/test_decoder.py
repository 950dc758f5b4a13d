"""Unit tests for the chunk decoder (SSE decoding and text delta extraction)."""

import json

import httpx
import pytest
from httpx_sse import aconnect_sse

from codestream.streaming.decoder import iter_sse_events, iter_text_deltas
from tests.conftest import sse_frames
from tests.unit.streaming.conftest import async_iter


async def _collect(agen):
    return [item async for item in agen]


def _delta(text: str) -> bytes:
    payload = {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}
    return f"data: {json.dumps(payload)}\n\n".encode()


async def _texts(body: bytes, chunk_size: int | None = None) -> list[str]:
    size = chunk_size or len(body) or 1
    chunks = [body[i : i + size] for i in range(0, len(body), size)]
    return await _collect(iter_text_deltas(iter_sse_events(async_iter(chunks))))


class TestIterSSEEvents:
    """Tests for iter_sse_events()."""

    @pytest.mark.asyncio
    async def test_basic_events(self):
        stream = async_iter([b"event: ping\ndata: one\n\n", b"data: two\n\n"])

        events = await _collect(iter_sse_events(stream))

        assert [(e.event, e.data) for e in events] == [("ping", "one"), ("message", "two")]

    @pytest.mark.asyncio
    async def test_event_split_across_chunks(self):
        stream = async_iter([b"da", b"ta: hel", b"lo\n", b"\n"])

        events = await _collect(iter_sse_events(stream))

        assert [e.data for e in events] == ["hello"]

    @pytest.mark.asyncio
    async def test_multibyte_character_split(self):
        """A UTF-8 sequence cut between chunks is decoded intact."""
        raw = "data: café\n\n".encode()
        cut = raw.index(b"\xa9")
        stream = async_iter([raw[:cut], raw[cut:]])

        events = await _collect(iter_sse_events(stream))

        assert [e.data for e in events] == ["café"]

    @pytest.mark.asyncio
    async def test_crlf_line_endings(self):
        stream = async_iter([b"data: a\r\n\r\n", b"data: b\r\n\r\n"])

        events = await _collect(iter_sse_events(stream))

        assert [e.data for e in events] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_comments_and_multiline_data(self):
        stream = async_iter([b": keep-alive\n\ndata: line1\ndata: line2\nid: 7\n\n"])

        events = await _collect(iter_sse_events(stream))

        assert len(events) == 1
        assert events[0].data == "line1\nline2"
        assert events[0].id == "7"


class TestIterTextDeltas:
    """Tests for iter_text_deltas()."""

    @pytest.mark.asyncio
    async def test_yields_text_in_order(self):
        body = sse_frames("<message>", "Hi", "</message>")

        assert await _texts(body, chunk_size=5) == ["<message>", "Hi", "</message>"]

    @pytest.mark.asyncio
    async def test_stops_at_message_stop(self):
        body = sse_frames("before") + _delta("after")

        assert await _texts(body) == ["before"]

    @pytest.mark.asyncio
    async def test_stops_at_done_sentinel(self):
        body = _delta("a") + b"data: [DONE]\n\n" + _delta("b")

        assert await _texts(body) == ["a"]

    @pytest.mark.asyncio
    async def test_skips_undecodable_and_other_events(self):
        body = (
            b"data: {not json\n\n"
            + b'data: {"type": "content_block_start", "index": 0}\n\n'
            + b'data: {"type": "content_block_delta", "delta": {"type": "input_json_delta"}}\n\n'
            + _delta("kept")
        )

        assert await _texts(body) == ["kept"]

    @pytest.mark.asyncio
    async def test_error_event_raises(self):
        from codestream.exceptions import UpstreamStreamError

        body = _delta("partial") + (
            b'event: error\ndata: {"type": "error", "error": {"type": "overloaded_error", '
            b'"message": "Overloaded"}}\n\n'
        )

        texts = []
        with pytest.raises(UpstreamStreamError, match="Overloaded"):
            async for text in iter_text_deltas(iter_sse_events(async_iter([body]))):
                texts.append(text)
        assert texts == ["partial"]

    @pytest.mark.asyncio
    async def test_reads_live_event_source(self):
        """Events read from an HTTP response feed the same text stream."""
        body = sse_frames("<message>", "Hi", "</message>")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            async with aconnect_sse(client, "POST", "http://gateway.test/messages") as event_source:
                texts = await _collect(iter_text_deltas(event_source.aiter_sse()))

        assert texts == ["<message>", "Hi", "</message>"]
