"""
PosturePomo Backend API
Posture-aware pomodoro timer

FastAPI application entry point. Landmark frames and smile confidences come
from the client-side estimators over REST or WebSocket; each session's events
are consumed in order by its own event channel.
"""

import logging
import sys
import time
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from shared.utils import LOG_FORMAT, LOG_DATE_FORMAT, setup_logger

# ============================================
# Configure Root Logger First
# ============================================
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format=LOG_FORMAT,
    datefmt=LOG_DATE_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Service routers
from posture_service.router import router as posture_router
from posture_service.models import ThresholdConfig, get_session_handler, get_stretch_handler

# Core utilities
from core.events import channel_registry
from core.websocket import connection_manager

# Setup logging
logger = setup_logger("posturepomo.main", level=logging.DEBUG)
request_logger = setup_logger("posturepomo.requests", level=logging.DEBUG)


# ============================================
# Request Logging Middleware
# ============================================

def _status_emoji(status_code: int) -> str:
    if status_code < 300:
        return "✅"
    if status_code < 400:
        return "↪️"
    if status_code < 500:
        return "⚠️"
    return "❌"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with its status and latency. Streams are logged by the router."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        target = f"{request.method} {request.url.path}"
        if request.url.query:
            request_logger.debug(f"➡️  {target}?{request.url.query}")
        else:
            request_logger.debug(f"➡️  {target}")

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            request_logger.error(f"💥 {target} → {type(e).__name__}: {e} ({elapsed_ms:.1f}ms)")
            request_logger.error(traceback.format_exc())
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        request_logger.info(
            f"{_status_emoji(response.status_code)} {target} → {response.status_code} ({elapsed_ms:.1f}ms)"
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown."""
    # ===== STARTUP =====
    logger.info("🚀 PosturePomo API starting up...")

    # Fail fast on misconfigured thresholds
    thresholds = ThresholdConfig.from_settings()
    logger.info(f"📏 Posture thresholds: {thresholds.to_dict()}")

    # Start WebSocket heartbeat
    await connection_manager.start_heartbeat()

    logger.info("✅ PosturePomo API ready!")

    yield  # Application runs here

    # ===== SHUTDOWN =====
    logger.info("👋 PosturePomo API shutting down...")

    await connection_manager.stop_heartbeat()

    # Stop session channels; queued frames are discarded
    await channel_registry.shutdown()

    logger.info("✅ Shutdown complete")


app = FastAPI(
    title="PosturePomo API",
    description="Posture classification, smile-driven pomodoro phases and guided stretches",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "service": "posturepomo-api",
        "websocket_connections": connection_manager.connection_count
    }


@app.get("/stats")
async def get_stats():
    """Get service statistics."""
    return {
        "websocket": connection_manager.get_stats(),
        "channels": channel_registry.get_stats(),
        "posture_sessions": len(get_session_handler().active_sessions),
        "stretch_routines": len(get_stretch_handler().active_routines)
    }


# Include service routers
app.include_router(posture_router, prefix="/api/posture", tags=["Posture Service"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
