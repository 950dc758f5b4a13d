"""Directive event types for the streaming pipeline.

DirectiveEvent is the unit the parser produces for every recognized state
transition. Consumers (the generation store, the SSE layer, the CLI) receive
events through a plain ``(event_type, payload)`` callback and treat them as
an append-only, strictly ordered log.

Parser events: ``message``, ``message_delta``, ``plan``, ``plan_streaming``,
``file_start``, ``file_streaming``, ``file_content_delta``, ``file_complete``,
``file_error``, ``action_start``, ``action_complete`` and ``action_error``.
The generation service adds ``status``, ``error`` and ``complete``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

# Callback receiving (event_type, payload). Fire-and-forget.
EventEmitter = Callable[[str, dict[str, Any]], None]


@dataclass(frozen=True)
class DirectiveEvent:
    """A single recorded event.

    Attributes:
        kind: Event type.
        payload: Event data; action results are passed through as returned.
        timestamp: Unix time the event was recorded.
    """

    kind: str
    payload: dict[str, Any]
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "data": self.payload, "timestamp": self.timestamp}


def iso_timestamp(clock: Callable[[], float] | None = None) -> str:
    """Return the current time as an ISO-8601 UTC string."""
    now = clock() if clock else time.time()
    return datetime.fromtimestamp(now, tz=timezone.utc).isoformat()
