"""FastAPI application configuration and setup.

Main entry point for the HTTP API with CORS, correlation IDs,
and lifecycle management of the generation sweeper.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from contextvars import ContextVar
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from codestream import __version__
from codestream.actions.registry import CapabilityRegistry
from codestream.api.routes import api_router
from codestream.exceptions import CodestreamError, ConfigurationError, LLMError
from codestream.generation.service import GenerationService
from codestream.generation.store import GenerationStore, run_periodic_sweep
from codestream.llm.gateway import GatewayClient
from codestream.settings import Settings, get_settings

logger = logging.getLogger(__name__)

# Context variable for correlation ID (thread-safe, async-safe)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Singleton app instance
_app: FastAPI | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    - Startup: start the periodic generation sweeper
    - Shutdown: stop the sweeper, cancel running generations, close the gateway client

    Args:
        app: FastAPI application instance

    Yields:
        None (context for application runtime)
    """
    settings: Settings = app.state.settings
    sweeper = asyncio.create_task(
        run_periodic_sweep(
            app.state.generation_store, settings.generation_sweep_interval_seconds
        ),
        name="generation-sweeper",
    )

    yield

    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    await app.state.generation_service.shutdown()


def create_app(
    settings: Settings | None = None,
    *,
    registry: CapabilityRegistry | None = None,
    gateway: GatewayClient | None = None,
) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional settings override (uses get_settings() if not provided)
        registry: Capability registry for action blocks (empty if not provided)
        gateway: Optional pre-built gateway client

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="codestream",
        description="Streams LLM directive output into files, actions and events",
        version=__version__,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    store = GenerationStore(retention_seconds=settings.generation_retention_seconds)
    app.state.settings = settings
    app.state.generation_store = store
    app.state.generation_service = GenerationService(
        store=store,
        gateway=gateway or GatewayClient(settings),
        registry=registry or CapabilityRegistry(),
        settings=settings,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment in ("development", "testing") else [],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Add correlation ID middleware (must be before routes)
    app.middleware("http")(_correlation_middleware)

    app.include_router(api_router, prefix="/api/v1")

    _register_exception_handlers(app, settings)

    return app


async def _correlation_middleware(request: Request, call_next):
    """Middleware to generate and propagate correlation IDs.

    Args:
        request: FastAPI request object
        call_next: Next middleware/handler in the chain

    Returns:
        Response with X-Correlation-ID header
    """
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    _correlation_id.set(correlation_id)

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


def get_correlation_id() -> str | None:
    """Get the current request's correlation ID from context."""
    return _correlation_id.get()


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Register custom exception handlers.

    Args:
        app: FastAPI application
        settings: Settings deciding whether error details are exposed
    """
    from fastapi import HTTPException
    from fastapi.responses import JSONResponse

    @app.exception_handler(CodestreamError)
    async def codestream_error_handler(
        request: Request,
        exc: CodestreamError,
    ) -> JSONResponse:
        """Handle application errors with correlation ID."""
        correlation_id = exc.correlation_id or get_correlation_id() or str(uuid.uuid4())
        error_type = exc.__class__.__name__.replace("Error", "_error").lower()
        status_code = 502 if isinstance(exc, LLMError) else 500

        logger.error(
            "Application error (%s, correlation_id=%s): %s",
            error_type,
            correlation_id,
            exc,
        )

        if settings.debug or isinstance(exc, ConfigurationError):
            message = str(exc)
        else:
            message = f"An error occurred. Correlation ID: {correlation_id}"
        return JSONResponse(
            status_code=status_code,
            content={
                "error": {
                    "code": status_code,
                    "message": message,
                    "type": error_type,
                    "correlation_id": correlation_id,
                }
            },
            headers={"X-Correlation-ID": correlation_id},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request,
        exc: HTTPException,
    ) -> JSONResponse:
        """Handle HTTP exceptions with consistent format."""
        correlation_id = get_correlation_id() or str(uuid.uuid4())
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": exc.status_code,
                    "message": exc.detail,
                    "type": "http_error",
                    "correlation_id": correlation_id,
                }
            },
            headers={"X-Correlation-ID": correlation_id},
        )


def get_app() -> FastAPI:
    """Get or create the singleton FastAPI application."""
    global _app
    if _app is None:
        _app = create_app()
    return _app


# For uvicorn: use "codestream.api.main:get_app" with --factory,
# or "codestream.api.main:app" which initializes on first access.
def __getattr__(name: str) -> Any:
    """Create the app lazily so importing this module has no side effects."""
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
