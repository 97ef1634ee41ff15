"""FastAPI application wiring for the Pulse agent engine.

Builds the engine services (store, orchestrator, insight feed) once per
process, configures logging, Prometheus metrics and rate limiting, and mounts
the agent, conversation and insights routers. While the app runs, due
schedules are swept every ``PULSE_SCHEDULE_INTERVAL_SECONDS``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .__version__ import __build_date__, __commit_sha__, __version__
from .agents.scheduling import ScheduleRunner
from .agents.service import create_services
from .app_logging import init_logging
from .config import get_settings
from .rate_limit import limiter
from .routers import agents, conversations, insights

load_dotenv()

logger = logging.getLogger(__name__)


async def _sweep_schedules(runner: ScheduleRunner, interval: float) -> None:
    """Run due schedules every ``interval`` seconds until cancelled."""

    while True:
        await asyncio.sleep(interval)
        try:
            results = await asyncio.to_thread(runner.run_due)
        except Exception:
            logger.exception("Schedule sweep failed")
            continue
        if results:
            logger.info("Schedule sweep finished", extra={"schedules": len(results)})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    services = create_services(settings)
    app.state.services = services
    sweeper = None
    if settings.schedule_interval_seconds > 0:
        sweeper = asyncio.create_task(
            _sweep_schedules(services.scheduler, settings.schedule_interval_seconds)
        )
    logger.info("Pulse engine started", extra={"version": __version__})
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
        services.close()
        app.state.services = None


app = FastAPI(title="Pulse", version=__version__, lifespan=lifespan)
init_logging(app)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
app.include_router(agents.router)
app.include_router(conversations.router)
app.include_router(insights.router)

# Expose Prometheus metrics
Instrumentator().instrument(app).expose(
    app, include_in_schema=False, endpoint="/api/metrics"
)


@app.get("/api/health")
async def health():
    """Liveness/readiness probe with a minimal JSON body."""
    return {"status": "ok"}


@app.get("/api/version")
async def version():
    """Return version information for the application."""
    return {
        "version": __version__,
        "build_date": __build_date__,
        "commit_sha": __commit_sha__,
    }
