"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bullion_sentinel.api.deps import AppState
from bullion_sentinel.api.routes import router
from bullion_sentinel.core.config import SentinelConfig, load_config
from bullion_sentinel.core.exceptions import (
    BullionSentinelError,
    ConfigError,
    PriceUnavailable,
    QuoteValidationError,
)
from bullion_sentinel.ingestion.client import QuoteSourceClient
from bullion_sentinel.ingestion.scheduler import IngestionScheduler
from bullion_sentinel.ingestion.store import create_store
from bullion_sentinel.pricing.service import PriceQueryService

logger = logging.getLogger(__name__)

_SHUTDOWN_GRACE_SECONDS = 5.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle.

    Schema creation failures propagate out of startup, so the server never
    serves traffic without a usable store.
    """
    config = app.state._pending_config or load_config()
    store = await create_store(config.storage, config.catalog.products)
    state = AppState(config=config, store=store, pricing=PriceQueryService(store))

    if config.ingestion.enabled:
        state.client = QuoteSourceClient(config.source)
        state.scheduler = IngestionScheduler(
            state.client,
            store,
            interval_seconds=config.ingestion.interval_seconds,
            batch_cap=config.ingestion.batch_cap,
            fetch_timeout_seconds=config.ingestion.fetch_timeout_seconds,
        )
        state.ingestion_task = asyncio.create_task(
            state.scheduler.run_forever(), name="quote-ingestion"
        )

    app.state.app_state = state

    yield

    try:
        if state.scheduler is not None and state.ingestion_task is not None:
            state.scheduler.stop()
            try:
                await asyncio.wait_for(state.ingestion_task, timeout=_SHUTDOWN_GRACE_SECONDS)
            except TimeoutError:
                logger.warning("Ingestion loop did not stop in time, cancelled")
            except Exception:
                logger.exception("Ingestion loop exited with an error")
    finally:
        try:
            if state.client is not None:
                await state.client.close()
        finally:
            await store.close()


def create_app(config: SentinelConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    import bullion_sentinel

    app = FastAPI(
        title="Bullion Sentinel API",
        description="Latest precious-metal quotes and price computation",
        version=bullion_sentinel.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(PriceUnavailable)
    async def price_unavailable_handler(request: Request, exc: PriceUnavailable):
        return JSONResponse(status_code=500, content={"error": "price not found"})

    @app.exception_handler(BullionSentinelError)
    async def sentinel_exception_handler(request: Request, exc: BullionSentinelError):
        status_map = {
            ConfigError: 400,
            QuoteValidationError: 400,
        }
        status = status_map.get(type(exc), 500)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
