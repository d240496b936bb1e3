"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from brick_counter.admin.router import router as admin_router
from brick_counter.api.routes import router as bricks_router
from brick_counter.config import Settings, settings
from brick_counter.database.engine import async_session_factory, close_db, init_db
from brick_counter.database.repository import CounterRepository
from brick_counter.services.attempt_guard import AttemptGuard
from brick_counter.services.brick_handler import BrickHandler
from brick_counter.services.counter_store import CounterStore
from brick_counter.services.maintenance import MaintenanceScheduler
from brick_counter.services.otp_engine import OTPEngine

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook.

    Builds every component once, hangs it on ``app.state`` and tears it down
    in reverse order. A missing OTP secret aborts startup before the app
    serves anything.
    """
    app_settings: Settings = app.state.settings
    logger.info("Starting %s …", app_settings.app_name)

    otp_engine = OTPEngine.from_settings(app_settings)
    await init_db()
    logger.info("Database initialised")

    repository = CounterRepository(async_session_factory)
    counter_store = CounterStore(repository, ttl_seconds=app_settings.counter_cache_ttl_seconds)
    counter_store.start()
    attempt_guard = AttemptGuard.from_settings(app_settings)
    maintenance = MaintenanceScheduler(
        attempt_guard,
        otp_engine,
        counter_store,
        repository,
        sweep_interval_seconds=app_settings.maintenance_interval_seconds,
        log_interval_seconds=app_settings.counter_log_interval_seconds,
    )

    app.state.repository = repository
    app.state.counter_store = counter_store
    app.state.attempt_guard = attempt_guard
    app.state.handler = BrickHandler(
        otp_engine,
        attempt_guard,
        counter_store,
        max_bricks=app_settings.max_bricks_per_request,
    )

    logger.info("Counter starts at %s bricks", await counter_store.read())
    await maintenance.start()
    try:
        yield
    finally:
        logger.info("Shutting down %s …", app_settings.app_name)
        try:
            await maintenance.stop()
        finally:
            await counter_store.stop()
            await close_db()


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI app; components are attached during the lifespan."""
    app_settings = app_settings or settings
    app = FastAPI(
        title=app_settings.app_name,
        description="Shared brick counter guarded by time-windowed one-time codes",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    app.include_router(bricks_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health_check():
        """Simple liveness probe."""
        return {"status": "healthy", "app": app_settings.app_name}

    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn (``brick-counter`` console script)."""
    uvicorn.run(
        "brick_counter.main:app",
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )
