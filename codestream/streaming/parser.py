"""Incremental directive parser — turn a streamed LLM response into side effects.

The model answers with pseudo-XML directive blocks (``<message>``,
``<file>``, ``<action>``, ``<plan>``) interleaved with free prose, streamed
token by token. ``StreamingDirectiveParser`` accumulates chunks in a
``StreamBuffer`` and, after every chunk, runs one extraction pass:

1. Scan the buffer left to right with a cursor. At each step the earliest
   open tag of any directive wins (extractor priority breaks ties); if its
   close tag is present the block is complete, otherwise scanning stops
   because everything after an unclosed tag belongs to that block.
2. Hand every complete block to its extractor in document order, awaiting
   each side effect before the next.
3. Remove all handled spans from the buffer in one operation.
4. Let the extractor owning the trailing unclosed block report progress.

Directive tags nested inside another block are that block's content, so the
result does not depend on where chunk boundaries fall.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from codestream.streaming.buffer import StreamBuffer
from codestream.streaming.events import iso_timestamp
from codestream.streaming.extractors import (
    ActionBlockExtractor,
    ExtractionContext,
    FileBlockExtractor,
    MessageExtractor,
    PlanExtractor,
    StreamMode,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from codestream.actions.registry import CapabilityRegistry
    from codestream.storage.file_writer import FileWriter
    from codestream.streaming.events import EventEmitter
    from codestream.streaming.extractors import BlockExtractor, BlockMatch

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Aggregate outcome of one generation.

    Attributes:
        files_written: Normalized paths of every file written, in order.
        errors: Formatted error strings for failed writes and actions.
    """

    files_written: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.files_written)

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the external result shape."""
        return {
            "filesWritten": list(self.files_written),
            "errors": list(self.errors),
            "totalFiles": self.total_files,
        }


class StreamingDirectiveParser:
    """Parse one generation's text stream into events and side effects.

    Not safe for concurrent use: chunks must be fed one at a time, each
    ``process_chunk`` awaited before the next. Create one parser per
    generation.

    Args:
        emit: Callback invoked with ``(event_type, payload)`` for every event.
        file_writer: Writer used to materialize completed file blocks.
        registry: Capability registry resolving action blocks.
        partial_min_length: Minimum trimmed length before a partial
            message or plan is streamed.
        file_stream_mode: ``"delta"`` for ``file_content_delta`` events,
            ``"full"`` for ``file_streaming`` snapshots.
        clock: Time source for event timestamps (default: time.time).
    """

    def __init__(
        self,
        emit: EventEmitter,
        *,
        file_writer: FileWriter,
        registry: CapabilityRegistry,
        partial_min_length: int = 10,
        file_stream_mode: StreamMode = "delta",
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._emit_callback = emit
        self._clock = clock or time.time
        self._finalized = False
        self.buffer = StreamBuffer()
        self.context = ExtractionContext(emit=self._emit)

        self.messages = MessageExtractor(self.context, min_partial_length=partial_min_length)
        self.files = FileBlockExtractor(
            self.context, writer=file_writer, stream_mode=file_stream_mode
        )
        self.actions = ActionBlockExtractor(self.context, registry=registry)
        self.plans = PlanExtractor(self.context, min_partial_length=partial_min_length)
        # Priority order
        self.extractors: tuple[BlockExtractor, ...] = (
            self.messages,
            self.files,
            self.actions,
            self.plans,
        )

    @property
    def result(self) -> GenerationResult:
        """Snapshot of the result accumulated so far."""
        return GenerationResult(
            files_written=list(self.context.files_written),
            errors=list(self.context.errors),
        )

    async def process_chunk(self, chunk: str) -> GenerationResult:
        """Append a chunk and run one extraction pass.

        Side-effect failures are reported as events and never raised.

        Returns:
            Snapshot of the result so far.

        Raises:
            RuntimeError: If the parser was already finalized.
        """
        if self._finalized:
            raise RuntimeError("process_chunk() called after finalize()")

        self.buffer.append(chunk)
        logger.debug(
            "Received chunk (%d chars): %r",
            len(chunk),
            chunk[:100] + ("..." if len(chunk) > 100 else ""),
        )
        await self._extract()
        return self.result

    async def finalize(self) -> GenerationResult:
        """Reconcile the end of the stream and return the final result.

        Call exactly once, after the upstream stream ended normally. A file
        left open is written with the content received so far; an unclosed
        action is never executed.

        Raises:
            RuntimeError: If called more than once.
        """
        if self._finalized:
            raise RuntimeError("finalize() called twice")
        self._finalized = True
        logger.info("Finalizing parsing process")

        # Complete actions were dispatched when they closed; an unclosed one
        # stays in the buffer untouched.
        await self._extract()
        await self.files.flush_open(self.buffer)

        result = self.result
        logger.info(
            "Parsing complete - %d files written, %d errors",
            result.total_files,
            len(result.errors),
        )
        return result

    def _emit(self, event_type: str, payload: dict[str, Any]) -> None:
        self._emit_callback(event_type, {**payload, "timestamp": iso_timestamp(self._clock)})

    def _scan(self) -> tuple[list[BlockMatch], tuple[BlockExtractor, int] | None]:
        """Locate complete blocks and the trailing unclosed block, if any."""
        text = self.buffer.text
        blocks: list[BlockMatch] = []
        cursor = 0

        if self.files.state.is_open:
            closing = self.files.match_close(text)
            if closing is None:
                return blocks, (self.files, self.files.state.content_start)
            blocks.append(closing)
            cursor = closing.end

        while True:
            earliest: tuple[BlockExtractor, Any] | None = None
            for extractor in self.extractors:
                open_match = extractor.open_pattern.search(text, cursor)
                if open_match and (earliest is None or open_match.start() < earliest[1].start()):
                    earliest = (extractor, open_match)
            if earliest is None:
                return blocks, None

            extractor, open_match = earliest
            close_index = text.find(extractor.close_tag, open_match.end())
            if close_index == -1:
                return blocks, (extractor, open_match.start())

            block = extractor.match_block(text, open_match, close_index)
            blocks.append(block)
            cursor = block.end

    async def _extract(self) -> None:
        blocks, pending = self._scan()

        for block in blocks:
            logger.debug("Dispatching %s block at [%d:%d]", block.extractor.kind, block.start, block.end)
            await block.extractor.complete(block)
        if blocks:
            spans = [(block.start, block.end) for block in blocks]
            if blocks[0].open_match is None:
                # Closing the open file consumes the buffer through its close tag
                _, consumed = spans.pop(0)
                self.buffer.consume(consumed)
                spans = [(start - consumed, end - consumed) for start, end in spans]
            self.buffer.remove_spans(spans)

        if pending is not None:
            extractor, open_start = pending
            # Every removed span lies before the pending block
            open_start -= sum(block.end - block.start for block in blocks)
            await extractor.stream_partial(self.buffer, open_start)
