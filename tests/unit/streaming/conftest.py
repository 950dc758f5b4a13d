"""Shared fixtures for streaming module tests."""

from typing import Any

import pytest

from codestream.actions.registry import CapabilityRegistry
from codestream.exceptions import FileWriteError

# Partial-progress events whose count depends on chunk boundaries
PROGRESS_EVENTS = {"message_delta", "plan_streaming", "file_streaming", "file_content_delta"}


class RecordingEmitter:
    """Emitter callback recording every (event_type, payload) pair."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, event_type: str, payload: dict[str, Any]) -> None:
        self.events.append((event_type, payload))

    @property
    def types(self) -> list[str]:
        return [event_type for event_type, _ in self.events]

    def of(self, event_type: str) -> list[dict[str, Any]]:
        return [payload for kind, payload in self.events if kind == event_type]

    def milestones(self) -> list[tuple[str, dict[str, Any]]]:
        """Non-progress events with timestamps removed."""
        return [
            (kind, {k: v for k, v in payload.items() if k != "timestamp"})
            for kind, payload in self.events
            if kind not in PROGRESS_EVENTS
        ]


class MemoryFileWriter:
    """File writer keeping written files in a dict.

    Paths listed in ``fail_paths`` raise FileWriteError instead.
    """

    def __init__(self, fail_paths: set[str] | None = None) -> None:
        self.files: dict[str, str] = {}
        self.fail_paths = fail_paths or set()

    async def write(self, path: str, content: str) -> str:
        if path in self.fail_paths:
            raise FileWriteError("disk full", path=path)
        normalized = path if path.startswith("src/") else f"src/{path}"
        self.files[normalized] = content
        return normalized


class FakeItems:
    """Data-layer client module recording its calls."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def insert(self, collection: str, item: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("insert", (collection, item)))
        return {"_id": "item-1", **item}

    def remove(self, collection: str, item_id: str) -> bool:
        self.calls.append(("remove", (collection, item_id)))
        return True

    async def fail(self, *args: Any) -> None:
        self.calls.append(("fail", args))
        raise RuntimeError("collection is read-only")


@pytest.fixture
def recorder() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def memory_writer() -> MemoryFileWriter:
    return MemoryFileWriter()


@pytest.fixture
def items() -> FakeItems:
    return FakeItems()


@pytest.fixture
def registry(items: FakeItems) -> CapabilityRegistry:
    registry = CapabilityRegistry()
    registry.register_module("items", items, actions=["insert", "remove", "fail"])
    return registry


@pytest.fixture
def make_parser(recorder, memory_writer, registry):
    """Factory building a parser wired to the recording fixtures."""
    from codestream.streaming.parser import StreamingDirectiveParser

    def _make(**kwargs: Any) -> StreamingDirectiveParser:
        return StreamingDirectiveParser(
            recorder,
            file_writer=memory_writer,
            registry=registry,
            **kwargs,
        )

    return _make


async def async_iter(items):
    """Convert a list to an async iterator."""
    for item in items:
        yield item


async def feed(parser, chunks):
    """Feed chunks one at a time, then finalize."""
    for chunk in chunks:
        await parser.process_chunk(chunk)
    return await parser.finalize()


def split_every(text: str, size: int) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]
