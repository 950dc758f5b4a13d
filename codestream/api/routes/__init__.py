"""API route registration.

Aggregates all API routers into a single router
for inclusion in the main application.
"""

from fastapi import APIRouter

from codestream.api.routes.generations import router as generations_router
from codestream.api.routes.system import router as system_router

# Main API router
api_router = APIRouter()

api_router.include_router(system_router)
api_router.include_router(generations_router)

__all__ = ["api_router"]
