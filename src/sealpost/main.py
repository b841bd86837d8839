# src/sealpost/main.py
"""Main entry point for the Sealpost relay."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from sealpost.api.v1 import (
    devices_router,
    keys_router,
    messages_router,
    presence_router,
    system_router,
)
from sealpost.core.errors import RelayError
from sealpost.core.settings import settings
from sealpost.db.time import utcnow
from sealpost.services.presence import PresenceHub
from sealpost.services.retention import RetentionSweeper

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Sealpost API",
    description="Key bootstrap and store-and-forward relay for end-to-end encrypted messaging",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(devices_router, prefix="/api/v1")
app.include_router(keys_router, prefix="/api/v1")
app.include_router(messages_router, prefix="/api/v1")
app.include_router(presence_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")

app.state.retention_sweeper = None


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Translate classified core failures into HTTP responses."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.on_event("startup")
async def on_startup() -> None:
    app.state.presence = PresenceHub()
    if settings.retention_sweep_enabled:
        sweeper = RetentionSweeper()
        await sweeper.start()
        app.state.retention_sweeper = sweeper
    else:
        app.state.retention_sweeper = None


@app.on_event("shutdown")
async def on_shutdown() -> None:
    sweeper: RetentionSweeper | None = getattr(app.state, "retention_sweeper", None)
    if sweeper:
        await sweeper.stop()
    presence: PresenceHub | None = getattr(app.state, "presence", None)
    if presence:
        presence.close_all()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok", "timestamp": utcnow().isoformat()}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Key bootstrap and store-and-forward relay",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sealpost.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        # Transport-level keepalive for presence sockets; unanswered pings close the socket.
        ws_ping_interval=settings.presence_keepalive_seconds,
        ws_ping_timeout=settings.presence_keepalive_seconds,
    )
