"""Block extractors — one per directive kind.

Each extractor owns the pattern of its open tag, its close tag, and the
per-block state needed to stream a block that is still being written:

- ``MessageExtractor``  ``<message>…</message>``, streamed as deltas
- ``FileBlockExtractor`` ``<file path="…" description="…">…</file>``, written to disk
- ``ActionBlockExtractor`` ``<action module="…" action="…">[…]</action>``, complete only
- ``PlanExtractor``     ``<plan>…</plan>``, streamed as full snapshots

The parser decides which blocks are complete; extractors turn a complete
block into side effects and events (``complete``) and report progress on
the single unclosed block at the end of the buffer (``stream_partial``).
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from codestream.actions.registry import CapabilityRegistry
    from codestream.storage.file_writer import FileWriter
    from codestream.streaming.buffer import StreamBuffer
    from codestream.streaming.events import EventEmitter

logger = logging.getLogger(__name__)

FILE_OPEN_PATTERN = re.compile(r'<file\s+path="([^"]+)"(?:\s+description="([^"]*)")?\s*>')
ACTION_OPEN_PATTERN = re.compile(
    r'<action\s+module="([^"]+)"\s+action="([^"]+)"(?:\s+description="([^"]*)")?\s*>'
)
_LEADING_NEWLINES = re.compile(r"^\n+")

StreamMode = Literal["delta", "full"]


def hold_back_close_tag(text: str, close_tag: str) -> str:
    """Drop a trailing fragment of ``text`` that could be the start of ``close_tag``.

    ``"print(x)</fi"`` becomes ``"print(x)"`` until the next chunk decides
    whether the fragment is a closing tag or content.
    """
    for size in range(min(len(close_tag) - 1, len(text)), 0, -1):
        if text.endswith(close_tag[:size]):
            return text[:-size]
    return text


def clean_file_content(raw: str) -> str:
    """Strip the leading newline run and trailing whitespace from a file body."""
    return _LEADING_NEWLINES.sub("", raw, count=1).rstrip()


@dataclass
class BlockState:
    """Streaming state of the block an extractor is currently tracking.

    Attributes:
        is_open: Whether a block has been opened and not yet closed.
        path: File path from the open tag (file blocks only).
        description: Optional description attribute.
        content_start: Buffer index where the block's content begins.
        emitted: Partial text already reported to the emitter.
    """

    is_open: bool = False
    path: str = ""
    description: str | None = None
    content_start: int = 0
    emitted: str = ""

    def reset(self) -> None:
        self.is_open = False
        self.path = ""
        self.description = None
        self.content_start = 0
        self.emitted = ""


@dataclass
class ExtractionContext:
    """Output side shared by all extractors of one parser."""

    emit: EventEmitter
    files_written: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BlockMatch:
    """A complete directive block located in the buffer.

    ``start``/``end`` delimit the span removed from the buffer once the
    block has been handled; ``content`` is the raw text between the tags.
    """

    extractor: BlockExtractor
    start: int
    end: int
    content: str
    open_match: re.Match[str] | None = None


class BlockExtractor:
    """Base class for directive extractors."""

    kind: str = ""
    open_pattern: re.Pattern[str]
    close_tag: str

    def __init__(self, context: ExtractionContext) -> None:
        self.context = context
        self.state = BlockState()

    def match_block(self, text: str, open_match: re.Match[str], close_index: int) -> BlockMatch:
        return BlockMatch(
            extractor=self,
            start=open_match.start(),
            end=close_index + len(self.close_tag),
            content=text[open_match.end() : close_index],
            open_match=open_match,
        )

    async def complete(self, block: BlockMatch) -> None:
        raise NotImplementedError

    async def stream_partial(self, buffer: StreamBuffer, open_start: int) -> None:
        """Report progress on an unclosed block starting at ``open_start``."""
        return None


class TaggedTextExtractor(BlockExtractor):
    """Free-text blocks (``<message>``, ``<plan>``).

    In ``delta`` mode only the newly appended suffix of the partial text is
    emitted; in ``full`` mode the whole partial text is re-emitted whenever
    it changes. Partial text shorter than ``min_partial_length`` is not
    streamed.
    """

    tag: str = ""
    complete_event: str = ""
    partial_event: str = ""

    def __init__(
        self,
        context: ExtractionContext,
        *,
        mode: StreamMode,
        min_partial_length: int = 10,
    ) -> None:
        super().__init__(context)
        self.kind = self.tag
        self.open_pattern = re.compile(rf"<{self.tag}>")
        self.close_tag = f"</{self.tag}>"
        self.mode = mode
        self.min_partial_length = min_partial_length

    def _complete_payload(self, text: str) -> dict[str, Any]:
        raise NotImplementedError

    def _partial_payload(self, text: str) -> dict[str, Any]:
        raise NotImplementedError

    async def complete(self, block: BlockMatch) -> None:
        text = block.content.strip()
        logger.debug("Found complete <%s> block (%d chars)", self.tag, len(text))

        if self.mode == "delta" and self.state.emitted:
            position = len(self.state.emitted)
            if len(text) > position:
                self._emit_delta(text[position:], position)
        self.state.reset()

        if not text:
            logger.debug("Skipping empty <%s> block", self.tag)
            return
        self.context.emit(self.complete_event, self._complete_payload(text))

    async def stream_partial(self, buffer: StreamBuffer, open_start: int) -> None:
        raw = buffer.text[open_start + len(self.tag) + 2 :]
        partial = hold_back_close_tag(raw, self.close_tag).strip()
        if len(partial) <= self.min_partial_length:
            return

        self.state.is_open = True
        if self.mode == "delta":
            position = len(self.state.emitted)
            if len(partial) <= position:
                return
            self._emit_delta(partial[position:], position)
        else:
            if partial == self.state.emitted:
                return
            self.context.emit(self.partial_event, self._partial_payload(partial))
        self.state.emitted = partial

    def _emit_delta(self, delta: str, position: int) -> None:
        self.context.emit(self.partial_event, {"delta": delta, "position": position})


class MessageExtractor(TaggedTextExtractor):
    """``<message>`` blocks: explanatory text shown to the user."""

    tag = "message"
    complete_event = "message"
    partial_event = "message_delta"

    def __init__(self, context: ExtractionContext, *, min_partial_length: int = 10) -> None:
        super().__init__(context, mode="delta", min_partial_length=min_partial_length)

    def _complete_payload(self, text: str) -> dict[str, Any]:
        return {"message": text}


class PlanExtractor(TaggedTextExtractor):
    """``<plan>`` blocks: the model's stated plan before it acts."""

    tag = "plan"
    complete_event = "plan"
    partial_event = "plan_streaming"

    def __init__(self, context: ExtractionContext, *, min_partial_length: int = 10) -> None:
        super().__init__(context, mode="full", min_partial_length=min_partial_length)

    def _complete_payload(self, text: str) -> dict[str, Any]:
        return {"plan": text, "message": f"Plan: {_summarize(text)}"}

    def _partial_payload(self, text: str) -> dict[str, Any]:
        return {"plan": text, "is_partial": True, "message": f"Planning: {_summarize(text)}"}


class FileBlockExtractor(BlockExtractor):
    """``<file>`` blocks: Idle → Open → Idle state machine.

    Only one file may be open at a time. While a file is open everything
    from ``state.content_start`` onwards is file content, including text that
    looks like another directive tag.
    """

    kind = "file"
    open_pattern = FILE_OPEN_PATTERN
    close_tag = "</file>"

    def __init__(
        self,
        context: ExtractionContext,
        *,
        writer: FileWriter,
        stream_mode: StreamMode = "delta",
    ) -> None:
        super().__init__(context)
        self.writer = writer
        self.stream_mode = stream_mode

    def match_close(self, text: str) -> BlockMatch | None:
        """Locate the close tag of the open file, if it has arrived.

        The returned span starts at the beginning of the buffer: the open
        tag markup was already removed and nothing before the content can
        still belong to another block.
        """
        close_index = text.find(self.close_tag, self.state.content_start)
        if close_index == -1:
            return None
        return BlockMatch(
            extractor=self,
            start=0,
            end=close_index + len(self.close_tag),
            content=text[self.state.content_start : close_index],
        )

    async def complete(self, block: BlockMatch) -> None:
        if not self.state.is_open:
            # Open and close tags arrived in the same scan
            self._open(block.open_match)
        if FILE_OPEN_PATTERN.search(block.content):
            logger.debug("Nested <file> tag inside %s kept as content", self.state.path)

        content = clean_file_content(block.content)
        self._emit_remaining_delta(content)
        await self._write(content, final=False)

    async def stream_partial(self, buffer: StreamBuffer, open_start: int) -> None:
        if not self.state.is_open:
            open_match = self.open_pattern.match(buffer.text, open_start)
            if open_match is None:
                return
            self._open(open_match)
            buffer.remove_spans([(open_match.start(), open_match.end())])
            self.state.content_start = open_match.start()

        raw = _LEADING_NEWLINES.sub("", buffer.text[self.state.content_start :], count=1)
        partial = hold_back_close_tag(raw, self.close_tag).rstrip()
        if not partial or partial == self.state.emitted:
            return

        if self.stream_mode == "delta":
            position = len(self.state.emitted)
            if len(partial) <= position:
                return
            self._emit_delta(partial[position:], position)
        else:
            self.context.emit(
                "file_streaming",
                {
                    "path": self.state.path,
                    "content": partial,
                    "message": f"Streaming: {self.state.path}...",
                },
            )
        self.state.emitted = partial

    async def flush_open(self, buffer: StreamBuffer) -> None:
        """Write a file whose close tag never arrived."""
        if not self.state.is_open:
            return

        raw = _LEADING_NEWLINES.sub("", buffer.text[self.state.content_start :], count=1)
        content = hold_back_close_tag(raw, self.close_tag).rstrip()
        if not content:
            logger.warning("Dropping unterminated file %s: no content", self.state.path)
            self.state.reset()
            return

        logger.info("Stream ended inside %s, writing partial content", self.state.path)
        self._emit_remaining_delta(content)
        await self._write(content, final=True)

    def _open(self, open_match: re.Match[str] | None) -> None:
        if open_match is None:
            raise ValueError("cannot open a file block without its open tag")
        path, description = open_match.group(1).strip(), open_match.group(2)
        self.state.reset()
        self.state.is_open = True
        self.state.path = path
        self.state.description = description

        logger.info("Starting to generate file: %s", path)
        self.context.emit(
            "file_start",
            {
                "path": path,
                "description": description or "",
                "message": description or f"Starting to generate: {path}",
            },
        )

    def _emit_delta(self, delta: str, position: int) -> None:
        self.context.emit(
            "file_content_delta",
            {
                "path": self.state.path,
                "delta": delta,
                "position": position,
                "message": f"Streaming: {self.state.path}...",
            },
        )

    def _emit_remaining_delta(self, content: str) -> None:
        if self.stream_mode != "delta" or not self.state.emitted:
            return
        position = len(self.state.emitted)
        if len(content) > position:
            self._emit_delta(content[position:], position)

    async def _write(self, content: str, *, final: bool) -> None:
        path = self.state.path
        try:
            written_path = await self.writer.write(path, content)
        except Exception as e:
            error_msg = f"Failed to write {path}: {e}"
            self.context.errors.append(error_msg)
            logger.error("File write error: %s", error_msg)
            self.context.emit(
                "file_error",
                {"path": path, "error": error_msg, "message": f"Error: {error_msg}"},
            )
        else:
            self.context.files_written.append(written_path)
            logger.info("Completed file: %s", written_path)
            self.context.emit(
                "file_complete",
                {
                    "path": path,
                    "written_path": written_path,
                    "content": content,
                    "message": f"Completed{' (final)' if final else ''}: {path}",
                },
            )
        finally:
            self.state.reset()


class ActionBlockExtractor(BlockExtractor):
    """``<action>`` blocks: JSON-array payload applied to a registered operation.

    Actions are never streamed; a half-received payload cannot be applied.
    """

    kind = "action"
    open_pattern = ACTION_OPEN_PATTERN
    close_tag = "</action>"

    def __init__(self, context: ExtractionContext, *, registry: CapabilityRegistry) -> None:
        super().__init__(context)
        self.registry = registry

    async def complete(self, block: BlockMatch) -> None:
        if block.open_match is None:
            raise ValueError("action block is missing its open tag")
        module, action, description = block.open_match.group(1, 2, 3)
        logger.info("Found complete action: %s.%s", module, action)

        try:
            args = json.loads(block.content.strip())
            if not isinstance(args, list):
                raise ValueError(f"expected a JSON array of arguments, got {type(args).__name__}")
        except (ValueError, RecursionError) as e:
            error_msg = f"Failed to parse action payload: {e}"
            self.context.errors.append(error_msg)
            logger.error("Action %s.%s: %s", module, action, error_msg)
            self.context.emit(
                "action_error",
                {
                    "module": module,
                    "action": action,
                    "description": description,
                    "error": error_msg,
                    "message": f"Action Error: {error_msg}",
                },
            )
            return

        self.context.emit(
            "action_start",
            {
                "module": module,
                "action": action,
                "description": description,
                "payload": args,
                "message": description or f"Executing: {module}.{action}",
            },
        )

        try:
            result = await self.registry.invoke(module, action, args)
        except Exception as e:
            error_msg = f"Failed to execute action {module}.{action}: {e}"
            self.context.errors.append(error_msg)
            logger.error("Action error: %s", error_msg)
            self.context.emit(
                "action_error",
                {
                    "module": module,
                    "action": action,
                    "description": description,
                    "payload": args,
                    "error": error_msg,
                    "message": f"Action Error: {error_msg}",
                },
            )
            return

        logger.info("Action %s.%s completed", module, action)
        self.context.emit(
            "action_complete",
            {
                "module": module,
                "action": action,
                "description": description,
                "payload": args,
                "result": result,
                "message": f"Action completed: {module}.{action}",
            },
        )


def _summarize(text: str, limit: int = 100) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."
