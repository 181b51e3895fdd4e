"""FastAPI route definitions for the bullion-sentinel API."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query

import bullion_sentinel
from bullion_sentinel.api.deps import AppState, get_app_state, get_pricing, get_store
from bullion_sentinel.api.schemas import (
    HealthResponse,
    PriceResponse,
    ProductResponse,
    QuoteResponse,
)
from bullion_sentinel.ingestion.store import SqliteQuoteStore
from bullion_sentinel.pricing.service import PriceQueryService

router = APIRouter()


# -- Price --


@router.get("/price", response_model=PriceResponse)
async def get_price(
    product_id: int = Query(..., alias="productId"),
    gram: float = Query(..., description="Weight in grams"),
    factor: float = Query(..., description="Purity multiplier, e.g. 0.916 for 22K"),
    pricing: PriceQueryService = Depends(get_pricing),
):
    """Price a weight of a product at a purity, from the latest stored quote."""
    amount = await pricing.quote(product_id, gram, factor)
    return PriceResponse(price=f"{amount:.2f}")


# -- Quotes --


@router.get("/quotes/latest", response_model=list[QuoteResponse])
async def latest_quotes(store: SqliteQuoteStore = Depends(get_store)):
    """Latest stored quote per product, with its age."""
    now = datetime.now(UTC)
    return [
        QuoteResponse(
            product_id=q.product_id,
            observed_at=q.observed_at,
            buy_price=str(q.buy_price),
            sell_price=str(q.sell_price),
            age_seconds=(now - q.observed_at).total_seconds() if q.has_timestamp else None,
        )
        for q in await store.latest_quotes()
    ]


@router.get("/products", response_model=list[ProductResponse])
async def list_products(store: SqliteQuoteStore = Depends(get_store)):
    """Product catalog."""
    return [ProductResponse(id=p.id, name=p.name) for p in await store.list_products()]


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(state: AppState = Depends(get_app_state)):
    """System health, row counts and ingestion freshness."""
    stats = await state.store.get_statistics()
    scheduler = state.scheduler
    return HealthResponse(
        status="ok",
        version=bullion_sentinel.__version__,
        storage_backend=str(state.config.storage.backend.value),
        total_quotes=stats["total_quotes"],
        total_products=stats["total_products"],
        latest_observed_at=stats["latest_observed_at"],
        ingestion_enabled=scheduler is not None,
        scheduler_state=str(scheduler.state.value) if scheduler else None,
        last_success_at=scheduler.last_success_at if scheduler else None,
    )
