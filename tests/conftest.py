"""Shared test fixtures for codestream.

Provides settings fixtures and fakes for the gateway used across unit tests.
"""

import json
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from httpx_sse import ServerSentEvent
from pydantic import SecretStr

from codestream.settings import Settings
from codestream.streaming.decoder import iter_sse_events

# =============================================================================
# SETTINGS
# =============================================================================


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Provide test settings with safe defaults."""
    return Settings(
        environment="testing",
        debug=True,
        llm_gateway_url="http://gateway.test/proxy/anthropic",
        llm_api_token=SecretStr("test-token"),
        llm_token_path=tmp_path / "missing-api-key.json",
        project_root=tmp_path,
        generation_sweep_interval_seconds=3600,
    )


@pytest.fixture
def mock_settings(test_settings: Settings, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Mock get_settings() to return test settings."""
    from codestream import settings

    monkeypatch.setattr(settings, "get_settings", lambda: test_settings)
    return test_settings


# =============================================================================
# GATEWAY
# =============================================================================


def sse_frames(*texts: str, stop: bool = True) -> bytes:
    """Build an Anthropic-style event stream carrying ``texts`` as text deltas."""
    frames = [
        'event: message_start\ndata: {"type": "message_start", "message": {"id": "msg_1"}}\n\n'
    ]
    for text in texts:
        frames.append(f"event: content_block_delta\ndata: {_delta_json(text)}\n\n")
    if stop:
        frames.append('event: message_stop\ndata: {"type": "message_stop"}\n\n')
    return "".join(frames).encode("utf-8")


def text_event(text: str) -> ServerSentEvent:
    """A single ``content_block_delta`` event carrying ``text``."""
    return ServerSentEvent(event="content_block_delta", data=_delta_json(text))


def _delta_json(text: str) -> str:
    return json.dumps(
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}
    )


class FakeGateway:
    """Stand-in for GatewayClient replaying a canned event stream.

    Args:
        body: Raw event stream bytes, decoded the same way a live response is.
        chunk_size: Size of each byte chunk fed to the decoder.
        error: Exception raised after the body has been streamed.
    """

    def __init__(
        self,
        body: bytes = b"",
        *,
        chunk_size: int = 7,
        error: Exception | None = None,
    ) -> None:
        self.body = body
        self.chunk_size = chunk_size
        self.error = error
        self.requests: list[tuple[str, str]] = []
        self.closed = False

    async def _chunks(self) -> AsyncIterator[bytes]:
        for start in range(0, len(self.body), self.chunk_size):
            yield self.body[start : start + self.chunk_size]

    async def stream_completion(
        self, system_prompt: str, user_message: str
    ) -> AsyncIterator[ServerSentEvent]:
        self.requests.append((system_prompt, user_message))
        async for sse in iter_sse_events(self._chunks()):
            yield sse
        if self.error is not None:
            raise self.error

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_gateway() -> FakeGateway:
    """Gateway streaming a message and one file."""
    return FakeGateway(
        sse_frames(
            "<message>Hello there</mes",
            'sage>\n<file path="hello.txt">\nhel',
            "lo world\n</file>",
        )
    )
