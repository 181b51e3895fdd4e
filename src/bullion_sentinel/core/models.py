"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

# --- Type Aliases ---

ProductId = int

# --- Constants ---

PRICE_PRECISION = Decimal("0.00001")
"""Persisted prices carry exactly five fractional digits."""

ZERO_TIME = datetime(1, 1, 1, tzinfo=UTC)
"""Sentinel observed_at for quotes whose upstream timestamp did not parse."""

# --- Enumerations ---


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"


class SchedulerState(StrEnum):
    """Phases of the ingestion loop."""

    IDLE = "idle"
    FETCHING = "fetching"
    PERSISTING = "persisting"


class CycleStatus(StrEnum):
    """Outcome of a single ingestion cycle."""

    OK = "ok"
    FETCH_FAILED = "fetch_failed"


# --- Catalog ---


class Product(BaseModel):
    """A tradable instrument that quotes reference."""

    model_config = ConfigDict(frozen=True)

    id: ProductId
    name: str

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("product name must not be blank")
        return v.strip()


# --- Quotes ---


class Quote(BaseModel):
    """One upstream price observation for a product."""

    model_config = ConfigDict(frozen=True)

    product_id: ProductId
    observed_at: datetime
    buy_price: Decimal
    sell_price: Decimal

    @field_validator("observed_at")
    @classmethod
    def observed_at_is_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC; aware ones are converted."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        try:
            return v.astimezone(UTC)
        except OverflowError as e:
            raise ValueError(f"observed_at {v.isoformat()} is outside the UTC range") from e

    @field_validator("buy_price", "sell_price", mode="before")
    @classmethod
    def float_through_str(cls, v: object) -> object:
        # Decimal(2010.1) would carry the binary expansion of the float
        if isinstance(v, float):
            return str(v)
        return v

    @field_validator("buy_price", "sell_price")
    @classmethod
    def price_non_negative(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError(f"price must be finite, got {v}")
        if v < 0:
            raise ValueError(f"price must be non-negative, got {v}")
        try:
            return v.quantize(PRICE_PRECISION)
        except InvalidOperation as e:
            raise ValueError(f"price {v} has too many digits to store") from e

    @property
    def has_timestamp(self) -> bool:
        """False when the upstream timestamp could not be parsed."""
        return self.observed_at != ZERO_TIME


# --- Ingestion ---


class CycleSummary(BaseModel):
    """What a single ingestion cycle did."""

    status: CycleStatus
    fetched: int = 0
    attempted: int = 0
    inserted: int = 0
    failed: int = 0
    started_at: datetime
    finished_at: datetime
    error: str | None = None

    @property
    def dropped(self) -> int:
        """Records beyond the batch cap that were not attempted."""
        return self.fetched - self.attempted
