"""FastAPI application for HookRelay."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from hookrelay import __version__
from hookrelay.config import Settings
from hookrelay.exceptions import (
    ConfigurationError,
    HookRelayError,
    InvalidStateError,
    NotFoundError,
    QueueFullError,
    ValidationError,
)
from hookrelay.logging import bind_context, clear_context, configure_logging, get_logger
from hookrelay.models import utc_now
from hookrelay.service import RelayService

from .router import router, set_service
from .schemas import HealthResponse

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan.

    Builds the RelayService and starts its delivery workers on startup;
    stops workers, pending retries and the HTTP client on shutdown.
    """
    settings: Settings = app.state.settings
    service: RelayService | None = app.state.service
    if service is None:
        service = RelayService.create(settings)

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info(
        "Starting HookRelay API",
        log_level=settings.log_level,
        workers=settings.delivery_workers,
        max_retries=settings.max_retries,
    )

    await service.initialize()
    set_service(service)

    yield

    await service.close()
    set_service(None)
    logger.info("HookRelay API stopped")


def create_app(
    settings: Settings | None = None,
    service: RelayService | None = None,
) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.
        service: Prebuilt service to serve. Built from settings on
            startup if None.

    Returns:
        Configured FastAPI application.

    Raises:
        ConfigurationError: If CORS is enabled without allowed origins.

    Example:
        ```python
        from hookrelay.api import create_app

        app = create_app()
        # Run with: uvicorn hookrelay.api:app --reload
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="HookRelay",
        description="Event intake and signed webhook fan-out with retries.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.service = service

    if settings.cors_enabled:
        if not settings.cors_allow_origins:
            raise ConfigurationError("cors_allow_origins must be set when CORS is enabled")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    @app.middleware("http")
    async def bind_request_context(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Tag API log lines with the request method and path."""
        bind_context(method=request.method, path=request.url.path)
        try:
            return await call_next(request)
        finally:
            clear_context()

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(InvalidStateError)
    async def invalid_state_error_handler(
        request: Request, exc: InvalidStateError
    ) -> JSONResponse:
        """Handle operations refused in the current state with 400 status."""
        logger.info("Invalid state", error=exc.message, path=str(request.url))
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(QueueFullError)
    async def queue_full_error_handler(request: Request, exc: QueueFullError) -> JSONResponse:
        """Handle a saturated delivery queue with 503 status."""
        logger.warning("Delivery queue full", error=exc.message, path=str(request.url))
        return JSONResponse(
            status_code=503,
            content=exc.to_dict(),
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(HookRelayError)
    async def hookrelay_error_handler(request: Request, exc: HookRelayError) -> JSONResponse:
        """Handle all other HookRelay errors with 500 status."""
        logger.error("HookRelay error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())

    @app.get("/health", response_model=HealthResponse, tags=["system"])
    async def health_check() -> HealthResponse:
        """Liveness probe."""
        return HealthResponse(
            status="ok",
            version=__version__,
            timestamp=utc_now().isoformat(),
        )

    app.include_router(router, prefix="/api")

    return app


# Default app instance for uvicorn
app = create_app()
