"""FastAPI application factory.

Creates and configures the FastAPI application with middleware,
exception handlers, and route registration.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from liaison import __version__
from liaison.api.dependencies import get_settings, shutdown_dependencies
from liaison.api.middleware.context import RequestContextMiddleware
from liaison.api.models.errors import ErrorBody, ErrorDetail, ErrorResponse
from liaison.api.routes import register_routes
from liaison.db.errors import StoreError
from liaison.errors import ErrorCode, LiaisonError, RateLimitedError
from liaison.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    await shutdown_dependencies()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    This factory function creates a fully configured FastAPI app with:
    - Structured logging
    - CORS and request context middleware
    - Global exception handlers
    - OpenTelemetry instrumentation when tracing is enabled
    - All API routes registered

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()
    log_config = settings.observability.logging
    setup_logging(
        level=log_config.level,
        format=log_config.format,
        redact_pii=log_config.redact_pii,
    )

    app = FastAPI(
        title="Liaison API",
        description="Live support sessions between visitors, a responder and operators",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=settings.api.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    register_exception_handlers(app)
    register_routes(app, settings)

    if settings.observability.tracing.enabled:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("opentelemetry_instrumentation_enabled")

    logger.info(
        "app_created",
        debug=settings.debug,
        storage_backend=settings.storage.backend,
        cors_origins=settings.api.cors_origins,
    )
    return app


def _error_response(status_code: int, body: ErrorBody) -> JSONResponse:
    headers = None
    if body.retry_after_seconds is not None:
        headers = {"Retry-After": str(body.retry_after_seconds)}
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=body).model_dump(mode="json", exclude_none=True),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers.

    Args:
        app: FastAPI application
    """

    @app.exception_handler(LiaisonError)
    async def liaison_error_handler(request: Request, exc: LiaisonError) -> JSONResponse:
        """Handle LiaisonError and its subclasses."""
        logger.warning(
            "api_error",
            error_code=exc.error_code.value,
            message=exc.message,
            path=request.url.path,
        )
        body = ErrorBody(code=exc.error_code, message=exc.message)
        if isinstance(exc, RateLimitedError):
            body.retry_after_seconds = exc.retry_after_seconds
        return _error_response(exc.status_code, body)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle FastAPI request validation errors."""
        logger.warning("validation_error", errors=exc.errors(), path=request.url.path)
        details = [
            ErrorDetail(
                field=".".join(str(loc) for loc in error["loc"]),
                message=error["msg"],
            )
            for error in exc.errors()
        ]
        body = ErrorBody(
            code=ErrorCode.INVALID_REQUEST,
            message="Request validation failed",
            details=details,
        )
        return _error_response(400, body)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        """Storage failures that escaped the session layer."""
        logger.error(
            "store_error",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        body = ErrorBody(code=ErrorCode.INTERNAL_ERROR, message="Storage is unavailable")
        return _error_response(500, body)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception(
            "unexpected_error",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        body = ErrorBody(
            code=ErrorCode.INTERNAL_ERROR,
            message="An unexpected error occurred",
        )
        return _error_response(500, body)


# Create the app instance for uvicorn
app = create_app()
