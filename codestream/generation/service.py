"""Generation service — run one prompt end to end.

Wires the gateway client, the chunk decoder and a fresh
``StreamingDirectiveParser`` together, and records every event in the
``GenerationStore`` so callers can poll for progress. Upstream failures
are the only errors that abort a generation; they surface as a single
``error`` event.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Any

from codestream.exceptions import ConfigurationError, LLMError
from codestream.settings import Settings, get_settings
from codestream.storage.file_writer import ProjectFileWriter
from codestream.streaming.decoder import iter_text_deltas
from codestream.streaming.events import iso_timestamp
from codestream.streaming.parser import GenerationResult, StreamingDirectiveParser

if TYPE_CHECKING:
    from collections.abc import AsyncIterable

    from codestream.actions.registry import CapabilityRegistry
    from codestream.generation.store import GenerationStore
    from codestream.llm.gateway import GatewayClient
    from codestream.storage.file_writer import FileWriter
    from codestream.streaming.events import EventEmitter

logger = logging.getLogger(__name__)


async def parse_text_stream(
    chunks: AsyncIterable[str],
    parser: StreamingDirectiveParser,
) -> GenerationResult:
    """Feed ``chunks`` through ``parser`` in order, then finalize.

    The next chunk is not read until the previous one has been fully
    processed, side effects included. ``finalize()`` only runs when the
    stream ends normally; an exception or cancellation leaves the parser
    unfinalized.
    """
    async for chunk in chunks:
        await parser.process_chunk(chunk)
    return await parser.finalize()


class GenerationService:
    """Run generations and record their events.

    Args:
        store: Registry receiving every generation's events and outcome.
        gateway: Client streaming completions from the LLM gateway.
        registry: Capability registry for action blocks.
        file_writer: Writer for file blocks (defaults to a
            ``ProjectFileWriter`` built from settings).
        settings: Application settings (defaults to ``get_settings()``).
    """

    def __init__(
        self,
        *,
        store: GenerationStore,
        gateway: GatewayClient,
        registry: CapabilityRegistry,
        file_writer: FileWriter | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.gateway = gateway
        self.registry = registry
        self.file_writer = file_writer or ProjectFileWriter(
            self.settings.project_root, self.settings.file_path_prefix
        )
        self._tasks: set[asyncio.Task[GenerationResult | None]] = set()

    def new_parser(self, emit: EventEmitter) -> StreamingDirectiveParser:
        return StreamingDirectiveParser(
            emit,
            file_writer=self.file_writer,
            registry=self.registry,
            partial_min_length=self.settings.partial_min_length,
            file_stream_mode=self.settings.file_stream_mode,
        )

    async def run(
        self,
        generation_id: str,
        prompt: str,
        *,
        system_prompt: str = "",
        listener: EventEmitter | None = None,
    ) -> GenerationResult | None:
        """Run one generation to completion.

        Args:
            generation_id: Key under which the generation is recorded.
            prompt: User prompt sent to the model.
            system_prompt: System prompt sent to the model.
            listener: Optional extra callback receiving every event as it is
                recorded (used by the SSE route and the CLI).

        Returns:
            The generation result, or None if the generation failed.

        Raises:
            ValueError: If ``generation_id`` is already in use.
        """
        self.store.create(generation_id)
        return await self._execute(generation_id, prompt, system_prompt, listener)

    def start(self, prompt: str, *, system_prompt: str = "") -> str:
        """Run a generation in the background and return its id.

        The generation is registered before this returns, so it can be
        polled immediately.
        """
        generation_id = uuid.uuid4().hex
        self.store.create(generation_id)
        task = asyncio.create_task(
            self._execute(generation_id, prompt, system_prompt, None),
            name=f"generation-{generation_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return generation_id

    async def shutdown(self) -> None:
        """Cancel background generations and close the gateway client."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.gateway.close()

    async def _execute(
        self,
        generation_id: str,
        prompt: str,
        system_prompt: str,
        listener: EventEmitter | None,
    ) -> GenerationResult | None:
        record = self.store.emitter_for(generation_id)

        def emit(event_type: str, payload: dict[str, Any]) -> None:
            record(event_type, payload)
            if listener is not None:
                listener(event_type, payload)

        logger.info("Starting generation %s (prompt: %d chars)", generation_id, len(prompt))
        emit("status", {"message": "Preparing request...", "timestamp": iso_timestamp()})
        parser = self.new_parser(emit)

        try:
            chunks = iter_text_deltas(self.gateway.stream_completion(system_prompt, prompt))
            result = await parse_text_stream(chunks, parser)
        except asyncio.CancelledError:
            logger.info("Generation %s cancelled", generation_id)
            self.store.mark_cancelled(generation_id)
            raise
        except (LLMError, ConfigurationError) as e:
            logger.error("Generation %s failed: %s", generation_id, e)
            self._fail(generation_id, emit, str(e))
            return None
        except Exception as e:
            logger.exception("Generation %s failed unexpectedly", generation_id)
            self._fail(generation_id, emit, f"{type(e).__name__}: {e}")
            return None

        emit(
            "complete",
            {
                "generation_id": generation_id,
                "result": result.to_dict(),
                "message": (
                    f"Generation complete - {result.total_files} files written, "
                    f"{len(result.errors)} errors"
                ),
                "timestamp": iso_timestamp(),
            },
        )
        self.store.mark_completed(generation_id, result)
        return result

    def _fail(
        self,
        generation_id: str,
        emit: EventEmitter,
        error: str,
    ) -> None:
        emit(
            "error",
            {
                "generation_id": generation_id,
                "error": error,
                "message": f"Generation failed: {error}",
                "timestamp": iso_timestamp(),
            },
        )
        self.store.mark_failed(generation_id, error)
