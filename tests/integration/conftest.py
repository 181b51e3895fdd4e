"""Fixtures for pipeline tests that wire a real client, scheduler and store."""

from __future__ import annotations

import pytest

from bullion_sentinel.core.config import SourceConfig, StorageConfig
from bullion_sentinel.ingestion.client import QuoteSourceClient
from bullion_sentinel.ingestion.store import create_store
from bullion_sentinel.pricing.service import PriceQueryService

FEED_URL = "https://feed.example.com/v1/quotes"


@pytest.fixture
async def store(tmp_path, catalog):
    s = await create_store(StorageConfig(sqlite_path=str(tmp_path / "pipeline.db")), catalog)
    yield s
    await s.close()


@pytest.fixture
async def source():
    async with QuoteSourceClient(SourceConfig(url=FEED_URL, rate_limit=10)) as client:
        yield client


@pytest.fixture
def pricing(store) -> PriceQueryService:
    return PriceQueryService(store)
