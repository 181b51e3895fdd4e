"""Shared pytest fixtures for bullion-sentinel."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from bullion_sentinel.core.config import (
    IngestionConfig,
    SentinelConfig,
    SourceConfig,
    StorageConfig,
)
from bullion_sentinel.core.models import Product, Quote, StorageBackend

FEED_URL = "https://feed.example.com/v1/quotes"


@pytest.fixture
def source_config() -> SourceConfig:
    return SourceConfig(url=FEED_URL, request_timeout=5)


@pytest.fixture
def catalog() -> tuple[Product, ...]:
    return (
        Product(id=1, name="Gold TRY"),
        Product(id=2, name="Gold USD"),
        Product(id=3, name="Silver TRY"),
    )


@pytest.fixture
def sample_quote() -> Quote:
    return Quote(
        product_id=1,
        observed_at=datetime(2024, 1, 1, 10, 0, 0, tzinfo=UTC),
        buy_price=Decimal("2000.0"),
        sell_price=Decimal("2010.0"),
    )


@pytest.fixture
def make_quote():
    """Factory for Quote with overridable defaults."""

    def _make(**overrides) -> Quote:
        defaults = dict(
            product_id=1,
            observed_at=datetime(2024, 1, 1, 10, 0, 0, tzinfo=UTC),
            buy_price=Decimal("2000.0"),
            sell_price=Decimal("2010.0"),
        )
        defaults.update(overrides)
        return Quote(**defaults)

    return _make


@pytest.fixture
def feed_item():
    """Factory for one upstream feed item in wire format."""

    def _make(**overrides) -> dict:
        item = {
            "marketProductId": 1,
            "updatedAt": "2024-01-01T10:00:00Z",
            "customerBuysAt": 2000.0,
            "customerSellsAt": 2010.0,
        }
        item.update(overrides)
        return item

    return _make


@pytest.fixture
def sentinel_config(tmp_path, catalog) -> SentinelConfig:
    """Config with a file-backed store and the background loop disabled."""
    return SentinelConfig(
        source=SourceConfig(url=FEED_URL),
        storage=StorageConfig(
            backend=StorageBackend.SQLITE,
            sqlite_path=str(tmp_path / "quotes.db"),
        ),
        ingestion=IngestionConfig(enabled=False, interval_seconds=60, batch_cap=8),
        catalog={"products": catalog},
    )
