"""System health endpoint.

- /health — Lightweight liveness probe (no dependency checks)
"""

from fastapi import APIRouter, Request

from codestream import __version__
from codestream.api.schemas import HealthResponse

router = APIRouter(tags=["System"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check (Liveness)",
)
async def health_check(request: Request) -> HealthResponse:
    """Report that the service is running.

    Does NOT contact the LLM gateway.
    """
    store = request.app.state.generation_store
    return HealthResponse(version=__version__, active_generations=len(store))
