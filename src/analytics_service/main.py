"""FastAPI application entry point."""

import structlog
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from analytics_service.api.v1.router import api_router
from analytics_service.config import get_settings
from analytics_service.exceptions import AnalyticsServiceError
from analytics_service.infrastructure.redis import close_redis
from analytics_service.middleware.request_context import RequestContextMiddleware

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(get_settings().log_level),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    settings = get_settings()
    logger.info(
        "Starting POS Analytics Service",
        app_env=settings.app_env,
        storage_backend=settings.storage_backend,
        suggester_enabled=bool(settings.gemini_api_key),
    )

    yield

    await close_redis()
    logger.info("Shutting down POS Analytics Service")


async def handle_service_error(request: Request, exc: AnalyticsServiceError) -> JSONResponse:
    """Map domain exceptions to their HTTP status with a JSON body."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request rejected",
        path=request.url.path,
        status_code=exc.status_code,
        error=exc.message,
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "details": exc.details},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="POS Analytics API",
        description="Customer analytics, market-basket rules and cart recommendations for a point-of-sale backend",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AnalyticsServiceError, handle_service_error)

    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "analytics_service.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=1 if settings.debug or settings.storage_backend == "memory" else settings.api_workers,
    )


if __name__ == "__main__":
    run()
