"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from modelnest import __version__
from modelnest.api.middleware import RequestLoggingMiddleware
from modelnest.api.v1.router import router as v1_router
from modelnest.config import settings
from modelnest.core.artifacts import get_artifact_store
from modelnest.core.exceptions import (
    AuthenticationError,
    CodeGenerationError,
    ModelNestError,
    PersistenceError,
    SessionNotFoundError,
    ValidationError,
)
from modelnest.core.orchestrator import wait_for_deployments
from modelnest.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

# Seconds between sweeps of expired pending deployments
ARTIFACT_SWEEP_INTERVAL = 60

# Seconds shutdown waits for running deployments to clean up
SHUTDOWN_GRACE_PERIOD = 30

ERROR_STATUS_CODES: dict[type[ModelNestError], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    SessionNotFoundError: status.HTTP_404_NOT_FOUND,
    CodeGenerationError: status.HTTP_502_BAD_GATEWAY,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_status_code(exc: ModelNestError) -> int:
    """HTTP status for an application error."""
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def sweep_expired_artifacts(interval: float = ARTIFACT_SWEEP_INTERVAL) -> None:
    """Periodically drop abandoned pending deployments."""
    store = get_artifact_store()
    while True:
        await asyncio.sleep(interval)
        await store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging()
    logger.info(
        "application.starting",
        version=__version__,
        environment=settings.app_env,
        build_tool=settings.build_tool_binary,
    )
    sweeper = asyncio.create_task(sweep_expired_artifacts())

    yield

    # Shutdown
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    unfinished = await wait_for_deployments(timeout=SHUTDOWN_GRACE_PERIOD)
    logger.info("application.shutdown", unfinished_deployments=unfinished)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="ModelNest Deployment API",
        description="Builds model images with the container toolchain and streams deployment progress",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # Register exception handlers
    @app.exception_handler(ModelNestError)
    async def modelnest_error_handler(
        request: Request, exc: ModelNestError
    ) -> JSONResponse:
        """Handle application-specific errors raised before a stream opens."""
        return JSONResponse(
            status_code=error_status_code(exc),
            content={
                "error": {
                    "code": type(exc).__name__.upper(),
                    "message": exc.message,
                    "details": exc.details,
                }
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected errors."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )

        if settings.is_development:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": {
                        "code": "INTERNAL_ERROR",
                        "message": str(exc),
                        "type": type(exc).__name__,
                    }
                },
            )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                }
            },
        )

    # Include routers
    app.include_router(v1_router)

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "modelnest.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
