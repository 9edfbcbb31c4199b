"""Cashier FastSpring - webhook synchronisation service."""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .api.middleware.rate_limit import limiter
from .api.routes import api_router
from .infrastructure.config import get_settings
from .infrastructure.database import close_db, init_db
from .infrastructure.logging_config import setup_logging

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_logging(
        json_output=not settings.debug and settings.is_production,
        level="DEBUG" if settings.debug else "INFO",
    )

    logger.info(
        "Starting %s v%s (%s), period timezone %s",
        settings.app_name, settings.app_version, settings.environment, settings.fastspring_timezone,
    )

    settings.validate_production_secrets()
    if not settings.fastspring_hmac_secret:
        logger.warning("FASTSPRING_HMAC_SECRET not set - webhook deliveries will be rejected with 403")

    if settings.is_development:
        logger.info("Development mode - initializing database...")
        await init_db()

    yield

    logger.info("Shutting down...")
    await close_db()
    logger.info("Application stopped.")


app = FastAPI(
    title=settings.app_name,
    description="Synchronises FastSpring subscription webhooks into local records",
    version=settings.app_version,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    # Payload values can surface in exception text
    if settings.is_production:
        logger.error("Unhandled exception: %s: %s", type(exc).__name__, str(exc)[:200])
    else:
        logger.error("Unhandled exception: %s", str(exc), exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = round((time.perf_counter() - start) * 1000, 1)
    response.headers["X-Response-Time"] = f"{duration_ms:.1f}ms"

    path = request.url.path
    if path.startswith("/api/v1/health"):
        return response

    extra = {
        "request_id": getattr(request.state, "request_id", None),
        "method": request.method,
        "path": path,
        "status_code": response.status_code,
        "duration_ms": duration_ms,
    }

    # Set by the webhook route once the delivery has been dispatched
    received = getattr(request.state, "events_received", None)
    if received is None:
        logger.info(
            "%s %s %s %.1fms", request.method, path, response.status_code, duration_ms,
            extra=extra,
        )
        return response

    acknowledged = request.state.events_acknowledged
    extra.update(
        events_received=received,
        events_acknowledged=acknowledged,
        events_failed=received - acknowledged,
    )
    log = logger.warning if acknowledged < received else logger.info
    log(
        "%s %s %s %.1fms - %d/%d event(s) acknowledged",
        request.method, path, response.status_code, duration_ms, acknowledged, received,
        extra=extra,
    )
    return response


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    incoming = request.headers.get("X-Request-ID")
    # Caller ids must be UUIDs
    request_id = str(uuid.uuid4())
    if incoming:
        try:
            uuid.UUID(incoming)
            request_id = incoming
        except ValueError:
            pass
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs" if settings.is_development else "disabled",
        "health": "/api/v1/health",
        "webhook": "/api/v1/fastspring/webhook",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cashier_fastspring.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        workers=settings.workers if not settings.is_development else 1,
    )
