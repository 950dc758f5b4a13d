"""Chunk decoder — provider server-sent events to model text fragments.

The gateway answers with Anthropic-style server-sent events, read with
``httpx-sse``. ``iter_text_deltas`` keeps only the text the model emitted,
in order, and ends at the provider's terminal signal. ``iter_sse_events``
decodes a captured event stream (a saved response, a replayed body) through
the same ``EventSource`` the live gateway stream uses.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx
from httpx_sse import EventSource

from codestream.exceptions import UpstreamStreamError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterable

    from httpx_sse import ServerSentEvent

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
SSE_CONTENT_TYPE = "text/event-stream"


async def iter_sse_events(stream: AsyncIterable[bytes]) -> AsyncGenerator[ServerSentEvent, None]:
    """Decode server-sent events from an async byte stream.

    The bytes are wrapped in an ``httpx.Response`` so line splitting and
    incremental UTF-8 decoding are httpx's own.
    """
    response = httpx.Response(200, headers={"content-type": SSE_CONTENT_TYPE}, content=stream)
    try:
        async for sse in EventSource(response).aiter_sse():
            yield sse
    finally:
        await response.aclose()


async def iter_text_deltas(
    events: AsyncIterable[ServerSentEvent],
) -> AsyncGenerator[str, None]:
    """Yield the model's text fragments from a provider event stream.

    Only ``content_block_delta`` payloads carrying ``delta.text`` produce
    output. The stream ends at ``[DONE]`` or ``message_stop``; undecodable
    data is skipped.

    Raises:
        UpstreamStreamError: If the provider reports an ``error`` event.
    """
    async for sse in events:
        if sse.data == DONE_SENTINEL:
            return

        try:
            payload: Any = json.loads(sse.data)
        except json.JSONDecodeError:
            logger.debug("Skipping undecodable event data: %r", sse.data[:200])
            continue
        if not isinstance(payload, dict):
            continue

        payload_type = payload.get("type")
        if payload_type == "content_block_delta":
            text = (payload.get("delta") or {}).get("text")
            if text:
                yield text
        elif payload_type == "message_stop":
            return
        elif payload_type == "error" or sse.event == "error":
            error = payload.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise UpstreamStreamError(f"Provider stream error: {message or sse.data[:200]}")
