"""
FastAPI application factory with middleware, CORS, and request tracing.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cohortlens import __version__
from cohortlens.config import get_settings
from cohortlens.dependencies import get_record_source
from cohortlens.engine import RestrictedAccessError, SourceError
from cohortlens.routers import metrics, sections
from cohortlens.utils.logging import configure_logging, get_logger

# Configure logging at module level
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    settings = get_settings()

    # Startup
    logger.info(
        "application_startup",
        version=app.version,
        source_endpoint=settings.graphql_endpoint,
        timezone=settings.timezone,
        dev_mode=settings.dev_mode,
    )

    yield

    # Shutdown
    if get_record_source.cache_info().currsize:
        source = get_record_source()
        if hasattr(source, "aclose"):
            await source.aclose()
    logger.info("application_shutdown")


def _request_id(request: Request) -> str:
    return request.headers.get("X-Request-ID") or getattr(request.state, "request_id", "")


def create_app() -> FastAPI:
    """
    Application factory.
    Creates and configures FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="CohortLens API",
        description="Customer segmentation and trend aggregation for merchant dashboards",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    # Request tracing middleware
    @app.middleware("http")
    async def trace_requests(request: Request, call_next):
        """Tag every request with an id and log its outcome and latency."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        started = time.perf_counter()
        request.state.request_id = request_id

        # Bind request ID to structlog context
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )

            return response
        except Exception as e:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "error": "Internal server error",
                    "request_id": request_id,
                },
                headers={"X-Request-ID": request_id},
            )

    @app.exception_handler(RestrictedAccessError)
    async def restricted_access_handler(request: Request, exc: RestrictedAccessError):
        """Protected data refusals map to 403 with the sentinel identifier."""
        logger.warning(
            "restricted_access_response",
            path=request.url.path,
            sentinel=exc.signal.sentinel,
            feature=exc.signal.feature,
        )
        return JSONResponse(status_code=403, content={"error": exc.signal.sentinel})

    @app.exception_handler(SourceError)
    async def source_error_handler(request: Request, exc: SourceError):
        logger.error("source_error_response", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(exc),
                "request_id": _request_id(request),
            },
        )

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness probe; never touches the record source."""
        return {
            "status": "healthy",
            "version": app.version,
            "timezone": settings.timezone,
        }

    app.include_router(metrics.router, prefix="/api/v1/metrics", tags=["Metrics"])
    app.include_router(sections.router, prefix="/api/v1/sections", tags=["Sections"])
    app.include_router(
        sections.breakdown_router, prefix="/api/v1/breakdowns", tags=["Breakdowns"]
    )

    logger.info("application_configured", routers_count=3)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "cohortlens.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
