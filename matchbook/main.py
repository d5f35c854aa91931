"""Matchbook FastAPI application.

Run locally with:
    uvicorn matchbook.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from matchbook.api.deps import close_resolver
from matchbook.api.v1.health import router as health_router
from matchbook.api.v1.router import api_router
from matchbook.config import settings
from matchbook.core.exceptions import MatchbookError, UnresolvablePlaceError
from matchbook.core.logging_config import configure_logging
from matchbook.middleware.request_id import RequestIDMiddleware
from matchbook.services.browser import browser_manager

# Configure structured logging (must happen before any logger is created)
configure_logging(log_format=settings.LOG_FORMAT, log_level=settings.LOG_LEVEL)

# Initialize Sentry error tracking
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        environment=settings.SENTRY_ENVIRONMENT,
        release=f"matchbook@{settings.APP_VERSION}",
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # The browser is launched lazily on the first scrape
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    yield

    logger.info("Shutting down...")
    await close_resolver()
    await browser_manager.shutdown()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Matchbook place resolution service. Turn shared Google Maps "
    "links into normalized places and check them for duplicates.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


@app.exception_handler(MatchbookError)
async def matchbook_error_handler(request: Request, exc: MatchbookError):
    content = {"success": False, "error": exc.message, "error_code": exc.error_code}
    if isinstance(exc, UnresolvablePlaceError) and exc.stages:
        content["stages"] = [stage.model_dump(mode="json") for stage in exc.stages]
    return JSONResponse(status_code=exc.status_code, content=content)


# Request ID middleware (must be added before other middleware)
app.add_middleware(RequestIDMiddleware)

app.add_middleware(GZipMiddleware, minimum_size=500)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router)

# Health & metrics routes (no /v1 prefix)
app.include_router(health_router)


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "status": "running",
    }
