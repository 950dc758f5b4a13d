"""In-memory registry of generation runs for poll-based retrieval.

Each generation records its events as they are emitted so an external
caller can poll for them by offset. Entries older than the retention
window are evicted by an explicit ``sweep()``, driven periodically by
``run_periodic_sweep`` and independent of the parsing path.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from codestream.streaming.events import DirectiveEvent

if TYPE_CHECKING:
    from collections.abc import Callable

    from codestream.streaming.events import EventEmitter
    from codestream.streaming.parser import GenerationResult

logger = logging.getLogger(__name__)

GenerationStatus = Literal["running", "completed", "error", "cancelled"]


@dataclass
class GenerationState:
    """State of one generation run."""

    generation_id: str
    started_at: float
    status: GenerationStatus = "running"
    events: list[DirectiveEvent] = field(default_factory=list)
    error: str | None = None
    finished_at: float | None = None
    result: GenerationResult | None = None


class GenerationStore:
    """Keyed store of generation states with time-based eviction.

    Args:
        retention_seconds: Age after which a generation is evicted.
        clock: Callable returning the current time in seconds
            (default: time.time). Inject a fake clock for tests.
    """

    def __init__(
        self,
        retention_seconds: float = 600,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.retention_seconds = retention_seconds
        self._clock = clock or time.time
        self._states: dict[str, GenerationState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, generation_id: object) -> bool:
        return generation_id in self._states

    def create(self, generation_id: str) -> GenerationState:
        """Register a new running generation.

        Raises:
            ValueError: If the id is already in use.
        """
        if generation_id in self._states:
            raise ValueError(f"Generation {generation_id} already exists")
        state = GenerationState(generation_id=generation_id, started_at=self._clock())
        self._states[generation_id] = state
        return state

    def get(self, generation_id: str) -> GenerationState | None:
        return self._states.get(generation_id)

    def record_event(self, generation_id: str, kind: str, payload: dict[str, Any]) -> None:
        """Append an event; events for evicted generations are dropped."""
        state = self._states.get(generation_id)
        if state is None:
            logger.debug("Dropping %s event for unknown generation %s", kind, generation_id)
            return
        state.events.append(DirectiveEvent(kind=kind, payload=payload, timestamp=self._clock()))

    def emitter_for(self, generation_id: str) -> EventEmitter:
        """Return an ``(event_type, payload)`` callback recording into this store."""

        def emit(kind: str, payload: dict[str, Any]) -> None:
            self.record_event(generation_id, kind, payload)

        return emit

    def events_since(self, generation_id: str, offset: int = 0) -> list[DirectiveEvent]:
        state = self._states.get(generation_id)
        if state is None:
            return []
        return state.events[max(offset, 0) :]

    def mark_completed(self, generation_id: str, result: GenerationResult) -> None:
        self._finish(generation_id, "completed", result=result)

    def mark_failed(self, generation_id: str, error: str) -> None:
        self._finish(generation_id, "error", error=error)

    def mark_cancelled(self, generation_id: str) -> None:
        self._finish(generation_id, "cancelled")

    def sweep(self) -> list[str]:
        """Evict generations started more than ``retention_seconds`` ago.

        Returns:
            Ids of the evicted generations.
        """
        cutoff = self._clock() - self.retention_seconds
        expired = [gid for gid, state in self._states.items() if state.started_at < cutoff]
        for gid in expired:
            del self._states[gid]
        if expired:
            logger.info("Evicted %d expired generation(s)", len(expired))
        return expired

    def _finish(
        self,
        generation_id: str,
        status: GenerationStatus,
        *,
        result: GenerationResult | None = None,
        error: str | None = None,
    ) -> None:
        state = self._states.get(generation_id)
        if state is None:
            logger.debug("Generation %s finished after eviction", generation_id)
            return
        state.status = status
        state.result = result
        state.error = error
        state.finished_at = self._clock()


async def run_periodic_sweep(store: GenerationStore, interval_seconds: float) -> None:
    """Sweep ``store`` every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        store.sweep()
