"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Price --


class PriceResponse(BaseModel):
    """Computed price, as a two-decimal string."""

    price: str = Field(..., examples=["9205.80"])


# -- Quotes --


class QuoteResponse(BaseModel):
    """Latest stored quote for one product."""

    product_id: int
    observed_at: datetime
    buy_price: str
    sell_price: str
    age_seconds: float | None = None


class ProductResponse(BaseModel):
    """Catalog entry."""

    id: int
    name: str


# -- Health --


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "ok"
    version: str
    storage_backend: str
    total_quotes: int
    total_products: int
    latest_observed_at: datetime | None = None
    ingestion_enabled: bool
    scheduler_state: str | None = None
    last_success_at: datetime | None = None
