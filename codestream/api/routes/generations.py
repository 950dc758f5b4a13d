"""Generations API — start a generation and follow its events.

Two ways to follow a run:

- ``POST /generations`` starts it in the background; ``GET
  /generations/{id}?since=N`` then polls the events recorded after offset N.
- ``GET /generations/stream?prompt=...`` runs it inline and forwards every
  event as a server-sent event.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from codestream.api.schemas import (
    EventResponse,
    GenerationAccepted,
    GenerationRequest,
    GenerationStatusResponse,
    ResultResponse,
)
from codestream.generation.service import GenerationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/generations", tags=["Generations"])

# End-of-stream marker pushed after the last event
_STREAM_END = object()


def _get_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


def format_sse(event_type: str, payload: dict[str, Any]) -> str:
    """Encode one event as a server-sent event frame."""
    return f"event: {event_type}\ndata: {json.dumps(payload, default=str)}\n\n"


@router.post("", status_code=202, response_model=GenerationAccepted)
async def start_generation(body: GenerationRequest, request: Request) -> GenerationAccepted:
    """Start a generation in the background."""
    service = _get_service(request)
    generation_id = service.start(body.prompt, system_prompt=body.system_prompt)
    return GenerationAccepted(generation_id=generation_id)


@router.get("/stream")
async def stream_generation(
    request: Request,
    prompt: str = Query(min_length=1, description="User prompt"),
    system_prompt: str = Query(default="", description="System prompt"),
) -> StreamingResponse:
    """Run a generation and stream its events as SSE.

    The generation is cancelled if the client disconnects.
    """
    service = _get_service(request)
    return StreamingResponse(
        _run_and_stream(service, prompt, system_prompt),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/{generation_id}", response_model=GenerationStatusResponse)
async def get_generation(
    generation_id: str,
    request: Request,
    since: int = Query(default=0, ge=0, description="Return events after this offset"),
) -> GenerationStatusResponse:
    """Poll a generation's status and the events recorded after ``since``."""
    store = _get_service(request).store
    state = store.get(generation_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Generation {generation_id} not found")

    events = store.events_since(generation_id, since)
    return GenerationStatusResponse(
        generation_id=generation_id,
        status=state.status,
        events=[EventResponse.from_event(event) for event in events],
        next_offset=max(since, len(state.events)),
        error=state.error,
        result=ResultResponse.from_result(state.result) if state.result else None,
    )


async def _run_and_stream(
    service: GenerationService,
    prompt: str,
    system_prompt: str,
) -> AsyncGenerator[str, None]:
    queue: asyncio.Queue[Any] = asyncio.Queue()
    generation_id = uuid.uuid4().hex

    def listener(event_type: str, payload: dict[str, Any]) -> None:
        queue.put_nowait((event_type, payload))

    async def run() -> None:
        try:
            await service.run(
                generation_id, prompt, system_prompt=system_prompt, listener=listener
            )
        finally:
            queue.put_nowait(_STREAM_END)

    task = asyncio.create_task(run(), name=f"generation-{generation_id}")
    try:
        while True:
            item = await queue.get()
            if item is _STREAM_END:
                break
            event_type, payload = item
            yield format_sse(event_type, payload)
    finally:
        if not task.done():
            logger.info("Client disconnected, cancelling generation %s", generation_id)
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)
