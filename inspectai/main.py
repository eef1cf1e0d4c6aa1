"""Inspection diagnostics backend - FastAPI entry point."""
import sys

# asyncpg is incompatible with Windows ProactorEventLoop (default on Windows).
# Must be set before any asyncio usage.
if sys.platform == "win32":
    import asyncio
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

import structlog
from fastapi import FastAPI

from inspectai.config import settings
from inspectai.database import engine
from inspectai.middleware.cors import setup_cors
from inspectai.middleware.error_handler import setup_error_handlers
from inspectai.middleware.logging_middleware import LoggingMiddleware
from inspectai.api.v1 import diagnostics as diagnostics_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "startup",
        env=settings.APP_ENV,
        ai_provider=settings.AI_PROVIDER,
        embedding_model=settings.EMBEDDING_MODEL,
    )
    if settings.SENTRY_DSN:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration

        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[FastApiIntegration()],
            traces_sample_rate=0.1 if settings.APP_ENV == "production" else 1.0,
            environment=settings.APP_ENV,
        )

    yield

    await engine.dispose()
    logger.info("shutdown")


def create_app() -> FastAPI:
    application = FastAPI(
        title="Inspection Diagnostics API",
        description="Grounded diagnostic descriptions for inspection photos",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Middleware (order matters: last added = first executed)
    setup_cors(application)
    setup_error_handlers(application)
    application.add_middleware(LoggingMiddleware)

    # API Routers
    application.include_router(
        diagnostics_router.router, prefix="/api/v1/diagnostics", tags=["Diagnostics"]
    )

    # Health check
    @application.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
