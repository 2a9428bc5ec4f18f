"""FastAPI application entry point for the development marketplace engine.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, create tables (dev mode),
       start the notification outbox relay.
    2. Running: Serve the REST API on a single Uvicorn process.
    3. Shutdown: Stop the relay, close database and Redis connections.

Run with:
    uv run uvicorn devmarket.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from devmarket.config import get_settings
from devmarket.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
    )

    # 2. Initialize database
    from devmarket.infrastructure.database.engine import close_db, get_session_factory, init_db

    await init_db()

    # 3. Initialize Redis (optional; notifications fall back to the log)
    from devmarket.infrastructure.redis_client import (
        RedisStreamSink,
        close_redis,
        init_redis,
    )
    from devmarket.services.notification_service import LoggingSink, OutboxRelay

    try:
        redis = await init_redis()
        sink = RedisStreamSink(
            redis,
            stream=settings.notification_stream,
            maxlen=settings.notification_stream_maxlen,
        )
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))
        await close_redis()
        sink = LoggingSink()

    # 4. Outbox relay
    relay = OutboxRelay(get_session_factory(), sink)
    relay_task = asyncio.create_task(
        relay.run_forever(settings.outbox_poll_interval_seconds),
        name="outbox-relay",
    )

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    relay_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await relay_task

    from devmarket.api.deps import close_payout_provider

    await close_payout_provider()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory: creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="DevMarket Engine",
        description=(
            "Transaction engine of a development marketplace: requests, "
            "proposals, escrow, product verification and seller settlement."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from devmarket.api.middleware import setup_middleware

    setup_middleware(app, allow_origins=settings.cors_allow_origins)

    # --- REST API Routes ---
    from devmarket.api.routes.health import router as health_router
    from devmarket.api.routes.payments import router as payments_router
    from devmarket.api.routes.requests import router as requests_router
    from devmarket.api.routes.settlements import router as settlements_router
    from devmarket.api.routes.verifications import router as verifications_router

    app.include_router(health_router)
    app.include_router(requests_router)
    app.include_router(verifications_router)
    app.include_router(settlements_router)
    app.include_router(payments_router)

    return app


# The app instance used by Uvicorn
app = create_app()
