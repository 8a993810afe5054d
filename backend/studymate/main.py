"""StudyMate API application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from studymate.api.v1 import api_router
from studymate.core.config import settings
from studymate.core.errors import (
    APIException,
    ErrorCode,
    api_exception_handler,
    create_error_response,
    http_exception_handler,
)
from studymate.core.logging_config import configure_logging
from studymate.core.middleware import (
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
    TokenRedactionMiddleware,
    install_token_redaction_logging,
    redact_exception_args,
    redact_token_from_path,
)
from studymate.core.rate_limit import limiter, rate_limit_exceeded_handler
from studymate.db.session import AsyncSessionLocal, Base, engine
from studymate.schemas.common import HealthResponse

# Registers every table on Base.metadata
import studymate.models  # noqa: F401

logger = logging.getLogger(__name__)

DEV_ENVIRONMENTS = ("local", "development", "dev")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(logging.DEBUG if settings.DEBUG else logging.INFO)
    install_token_redaction_logging()
    logger.info(
        "%s %s starting", settings.APP_NAME, settings.APP_VERSION,
        extra={"event_type": "system.startup"},
    )

    # Deployed environments are migrated with `alembic upgrade head`
    if settings.ENVIRONMENT in DEV_ENVIRONMENTS:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    if settings.TOKEN_REAPER_ENABLED:
        from studymate.scheduler import start_scheduler

        start_scheduler()

    try:
        yield
    finally:
        if settings.TOKEN_REAPER_ENABLED:
            from studymate.scheduler import shutdown_scheduler

            shutdown_scheduler()
        await engine.dispose()
        logger.info("Shutdown complete", extra={"event_type": "system.shutdown"})


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Catalog and single-use download links for college study materials",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json" if settings.EXPOSE_DOCS else None,
    docs_url=f"{settings.API_V1_PREFIX}/docs" if settings.EXPOSE_DOCS else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(APIException, api_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)

# Last added runs first: request id is assigned before anything else
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["Content-Disposition", "Content-Length", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TokenRedactionMiddleware)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log with traceback, answer with a body that reveals nothing."""
    redact_exception_args(exc)
    logger.error(
        "Unhandled error on %s %s",
        request.method,
        redact_token_from_path(request.url.path),
        exc_info=exc,
        extra={"event_type": "system.unhandled_error"},
    )
    return JSONResponse(
        status_code=500,
        content=create_error_response(
            ErrorCode.INTERNAL_ERROR,
            "An unexpected error occurred",
            getattr(request.state, "request_id", None),
        ),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Round-trip to the database; 503 when it is unreachable."""
    database = "connected"
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Health check database probe failed: %s", type(e).__name__)
        database = "error" if settings.ENVIRONMENT == "production" else f"error: {type(e).__name__}"

    health = HealthResponse(
        status="healthy" if database == "connected" else "unhealthy",
        version=settings.APP_VERSION,
        database=database,
        timestamp=datetime.now(timezone.utc),
    )
    if health.status != "healthy":
        return JSONResponse(status_code=503, content=health.model_dump(mode="json"))
    return health


@app.get("/", tags=["Root"])
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": app.docs_url,
    }


app.include_router(api_router, prefix=settings.API_V1_PREFIX)
