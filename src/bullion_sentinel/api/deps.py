"""Dependency injection for FastAPI routes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from fastapi import Request

from bullion_sentinel.core.config import SentinelConfig
from bullion_sentinel.ingestion.client import QuoteSourceClient
from bullion_sentinel.ingestion.scheduler import IngestionScheduler
from bullion_sentinel.ingestion.store import SqliteQuoteStore
from bullion_sentinel.pricing.service import PriceQueryService


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan."""

    config: SentinelConfig
    store: SqliteQuoteStore
    pricing: PriceQueryService
    scheduler: IngestionScheduler | None = None
    client: QuoteSourceClient | None = None
    ingestion_task: asyncio.Task | None = None


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_store(request: Request) -> SqliteQuoteStore:
    """Dependency: retrieve storage backend."""
    return request.app.state.app_state.store


def get_pricing(request: Request) -> PriceQueryService:
    """Dependency: retrieve the price query service."""
    return request.app.state.app_state.pricing
