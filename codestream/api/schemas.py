"""Generation API schemas.

Pydantic schemas for starting generations and polling their events.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field

from codestream.streaming.events import DirectiveEvent
from codestream.streaming.parser import GenerationResult


class GenerationRequest(BaseModel):
    """Schema for starting a generation."""

    prompt: str = Field(min_length=1, max_length=200_000, description="User prompt")
    system_prompt: str = Field(default="", description="System prompt sent with the request")


class GenerationAccepted(BaseModel):
    """Response returned when a generation has been started."""

    generation_id: str


class EventResponse(BaseModel):
    """One recorded generation event."""

    type: str
    data: dict[str, Any]
    timestamp: float

    @classmethod
    def from_event(cls, event: DirectiveEvent) -> EventResponse:
        """Build from a recorded event, making the payload JSON-safe.

        Action handlers may return objects the encoder does not know; those
        fall back to their string form, as on the SSE stream.
        """
        try:
            data = jsonable_encoder(event.payload)
        except (TypeError, ValueError):
            data = json.loads(json.dumps(event.payload, default=str))
        return cls(type=event.kind, data=data, timestamp=event.timestamp)


class ResultResponse(BaseModel):
    """Aggregate generation result, serialized in camelCase."""

    model_config = ConfigDict(populate_by_name=True)

    files_written: list[str] = Field(default_factory=list, serialization_alias="filesWritten")
    errors: list[str] = Field(default_factory=list)
    total_files: int = Field(default=0, serialization_alias="totalFiles")

    @classmethod
    def from_result(cls, result: GenerationResult) -> ResultResponse:
        return cls(
            files_written=list(result.files_written),
            errors=list(result.errors),
            total_files=result.total_files,
        )


class GenerationStatusResponse(BaseModel):
    """Status of a generation and its events after the requested offset."""

    generation_id: str
    status: Literal["running", "completed", "error", "cancelled"]
    events: list[EventResponse]
    next_offset: int = Field(description="Offset to pass as ``since`` on the next poll")
    error: str | None = None
    result: ResultResponse | None = None


class HealthResponse(BaseModel):
    """Liveness response."""

    status: Literal["healthy"] = "healthy"
    version: str
    active_generations: int = Field(description="Generations currently held in the store")
