"""
udp_video Main Application
==========================

Process entry point: owns the session lifecycle and the status API.

The lifespan (or run_sessions() when the API is disabled) is the single
place where sessions are created after configuration is loaded and torn
down before the process exits.

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness probe (is process alive?)
    GET  /ready     - Readiness probe (is any session RUNNING?)
    GET  /sessions  - Per-session state and counters
    GET  /metrics   - Aggregated counters
"""

import asyncio
import logging
import signal
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from udp_video.config import Settings, settings
from udp_video.session import (
    SessionManager,
    camera_source_factory,
    display_factory,
    synthetic_source_factory,
)
from udp_video.session.manager import SourceFactory


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_manager: Optional[SessionManager] = None
_startup_time: float = 0.0


def get_manager() -> Optional[SessionManager]:
    return _manager


# =============================================================================
# Factories
# =============================================================================

def create_source_factory(config: Settings) -> SourceFactory:
    """
    Select the frame source backend.

    Raises:
        ValueError: Unknown backend
    """
    backend = config.capture.backend

    if backend == "camera":
        logger.info("Using camera capture")
        return camera_source_factory

    if backend == "synthetic":
        logger.info(
            f"Using synthetic capture: "
            f"{config.capture.synthetic_width}x{config.capture.synthetic_height} "
            f"@ {config.capture.synthetic_fps} fps"
        )
        return synthetic_source_factory(
            width=config.capture.synthetic_width,
            height=config.capture.synthetic_height,
            fps=config.capture.synthetic_fps,
        )

    raise ValueError(f"Unknown capture backend: {backend}")


def create_manager(config: Settings) -> SessionManager:
    return SessionManager(
        options=config.session_options(),
        source=create_source_factory(config),
        display=display_factory(config.display.backend, config.display.delay_ms),
        fallback_image_path=config.display.fallback_image,
    )


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start every configured session, stop them all on shutdown."""
    global _manager, _startup_time

    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    if not settings.sessions:
        logger.warning("No sessions configured")

    _manager = create_manager(settings)
    await _manager.start(settings.sessions)

    yield

    logger.info("Shutting down gracefully...")
    await _manager.stop()
    logger.info("Shutdown complete")


async def run_sessions(
    config: Settings = settings,
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    """
    Run all sessions without the status API.

    Returns when every session has terminated or stop_event is set.
    Without a stop_event, SIGINT/SIGTERM set an internal one.
    """
    global _manager, _startup_time

    _startup_time = time.time()
    logger.info(f"Starting {config.service.name} {config.service.version} (headless)")

    loop = asyncio.get_running_loop()
    handled_signals = []
    if stop_event is None:
        stop_event = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
                handled_signals.append(sig)
            except NotImplementedError:
                # Windows event loops have no signal handler support.
                pass

    _manager = create_manager(config)
    try:
        async with _manager:
            await _manager.start(config.sessions)
            waiter = asyncio.create_task(_manager.wait())
            stopper = asyncio.create_task(stop_event.wait())
            await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
            stopper.cancel()

        # Every session task is finished once the manager has stopped.
        await asyncio.gather(waiter, stopper, return_exceptions=True)
    finally:
        for sig in handled_signals:
            loop.remove_signal_handler(sig)

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="udp-video",
    description="Latest-frame-wins camera streaming over UDP",
    version=settings.service.version,
    lifespan=lifespan,
)


@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": settings.service.name,
        "version": settings.service.version,
        "status": "running",
        "sessions_configured": len(settings.sessions),
        "capture_backend": settings.capture.backend,
        "display_backend": settings.display.backend,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe. Always 200 while the process is up."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe.

    Returns 200 if at least one session is RUNNING, otherwise 503.
    """
    manager = get_manager()
    running = manager.running_count() if manager else 0

    if running > 0:
        return JSONResponse({
            "status": "ready",
            "sessions_running": running,
        })

    return JSONResponse(
        {
            "status": "not_ready",
            "sessions_running": running,
        },
        status_code=503,
    )


@app.get("/sessions")
async def sessions() -> JSONResponse:
    """State and counters of every session."""
    manager = get_manager()
    if manager is None:
        return JSONResponse({"error": "Sessions not started"}, status_code=503)

    return JSONResponse({
        "sessions": manager.snapshot(),
        "failed": manager.failed,
    })


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Counters summed across sessions."""
    manager = get_manager()
    snapshots = manager.snapshot() if manager else []

    totals: dict = {}
    for snap in snapshots:
        for key, value in snap["metrics"].items():
            if key == "last_payload_size":
                continue
            totals[key] = totals.get(key, 0) + value

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "sessions_total": len(snapshots),
        "sessions_running": manager.running_count() if manager else 0,
        "sessions_failed": len(manager.failed) if manager else 0,
        **totals,
    })


# =============================================================================
# Main Entry Point
# =============================================================================

def main() -> None:
    if not settings.server.enabled:
        try:
            asyncio.run(run_sessions(settings))
        except KeyboardInterrupt:
            pass
        return

    import uvicorn

    uvicorn.run(
        "udp_video.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
