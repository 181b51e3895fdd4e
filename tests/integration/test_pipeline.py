"""End-to-end ingestion and pricing against a mocked feed and a real SQLite store."""

from __future__ import annotations

import asyncio
import time
from decimal import Decimal

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from bullion_sentinel.api.app import create_app
from bullion_sentinel.core.exceptions import PriceUnavailable
from bullion_sentinel.core.models import CycleStatus
from bullion_sentinel.ingestion.scheduler import IngestionScheduler

pytestmark = pytest.mark.integration

FEED_URL = "https://feed.example.com/v1/quotes"


def _feed(*items):
    return httpx.Response(200, json={"data": list(items)})


class TestIngestThenPrice:
    @respx.mock
    async def test_refresh_then_price(self, source, store, pricing, feed_item):
        respx.get(FEED_URL).mock(return_value=_feed(feed_item(customerSellsAt=2010.0)))
        scheduler = IngestionScheduler(source, store, batch_cap=8)

        summary = await scheduler.run_cycle()

        assert summary.status == CycleStatus.OK
        assert summary.inserted == 1
        assert await pricing.quote(1, 5, 0.916) == Decimal("9205.80")

    @respx.mock
    async def test_newer_cycle_wins(self, source, store, pricing, feed_item):
        route = respx.get(FEED_URL)
        route.side_effect = [
            _feed(feed_item(updatedAt="2024-01-01T10:00:00Z", customerSellsAt=2010.0)),
            _feed(feed_item(updatedAt="2024-01-01T10:00:15Z", customerSellsAt=2020.0)),
        ]
        scheduler = IngestionScheduler(source, store)

        await scheduler.run_cycle()
        await scheduler.run_cycle()

        assert await pricing.quote(1, 1, 1) == Decimal("2020.00")
        assert await store.count_quotes(product_id=1) == 2

    @respx.mock
    async def test_failed_cycle_leaves_previous_price(self, source, store, pricing, feed_item):
        route = respx.get(FEED_URL)
        route.side_effect = [
            _feed(feed_item(customerSellsAt=2010.0)),
            httpx.Response(503),
            httpx.ConnectError("refused"),
        ]
        scheduler = IngestionScheduler(source, store)

        first = await scheduler.run_cycle()
        second = await scheduler.run_cycle()
        third = await scheduler.run_cycle()

        assert first.status == CycleStatus.OK
        assert second.status == CycleStatus.FETCH_FAILED
        assert third.status == CycleStatus.FETCH_FAILED
        assert await pricing.quote(1, 1, 1) == Decimal("2010.00")
        assert scheduler.last_success_at == first.finished_at

    async def test_price_unavailable_before_first_refresh(self, pricing):
        with pytest.raises(PriceUnavailable):
            await pricing.quote(1, 1, 1)


class TestBatchHandling:
    @respx.mock
    async def test_only_first_records_are_stored(self, source, store, feed_item):
        items = [feed_item(marketProductId=1 + i % 3, customerSellsAt=2000.0 + i) for i in range(12)]
        respx.get(FEED_URL).mock(return_value=_feed(*items))
        scheduler = IngestionScheduler(source, store, batch_cap=8)

        summary = await scheduler.run_cycle()

        assert summary.fetched == 12
        assert summary.inserted == 8
        assert await store.count_quotes() == 8
        # Record 8 (product 3, 2008.0) was beyond the cap
        assert await store.latest_sell_price(3) == Decimal("2005")

    @respx.mock
    async def test_unknown_product_does_not_block_siblings(self, source, store, feed_item):
        respx.get(FEED_URL).mock(
            return_value=_feed(
                feed_item(marketProductId=1),
                feed_item(marketProductId=99),
                feed_item(marketProductId=2),
            )
        )
        scheduler = IngestionScheduler(source, store)

        summary = await scheduler.run_cycle()

        assert summary.status == CycleStatus.OK
        assert summary.inserted == 2
        assert summary.failed == 1
        assert await store.count_quotes(product_id=1) == 1
        assert await store.count_quotes(product_id=2) == 1

    @respx.mock
    async def test_unparseable_timestamp_never_beats_real_one(self, source, store, pricing, feed_item):
        route = respx.get(FEED_URL)
        route.side_effect = [
            _feed(feed_item(customerSellsAt=2010.0)),
            _feed(feed_item(updatedAt="not a time", customerSellsAt=1.0)),
        ]
        scheduler = IngestionScheduler(source, store)

        await scheduler.run_cycle()
        await scheduler.run_cycle()

        assert await store.count_quotes(product_id=1) == 2
        assert await pricing.quote(1, 1, 1) == Decimal("2010.00")


class TestLoopResilience:
    @respx.mock
    async def test_oversized_price_skips_one_cycle_only(self, source, store, pricing, feed_item):
        route = respx.get(FEED_URL)
        route.side_effect = [
            _feed(feed_item(customerSellsAt=1e23)),
            _feed(feed_item(updatedAt="0001-01-01T00:00:00+01:00", customerSellsAt=2000.0)),
        ] + [_feed(feed_item(customerSellsAt=2010.0)) for _ in range(50)]
        scheduler = IngestionScheduler(source, store, interval_seconds=0.02)

        task = asyncio.create_task(scheduler.run_forever())
        for _ in range(100):
            if await store.count_quotes(product_id=1) >= 2:
                break
            await asyncio.sleep(0.01)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

        assert task.exception() is None
        assert await store.count_quotes(product_id=1) >= 2
        assert await pricing.quote(1, 1, 1) == Decimal("2010.00")


class TestConcurrentReads:
    @respx.mock
    async def test_queries_during_ingestion_see_a_committed_state(
        self, source, store, pricing, feed_item
    ):
        route = respx.get(FEED_URL)
        route.side_effect = [
            _feed(feed_item(customerSellsAt=2010.0)),
            _feed(feed_item(updatedAt="2024-01-01T10:00:15Z", customerSellsAt=2020.0)),
        ]
        scheduler = IngestionScheduler(source, store)
        await scheduler.run_cycle()

        results = await asyncio.gather(
            scheduler.run_cycle(),
            *[pricing.quote(1, 1, 1) for _ in range(20)],
        )

        assert results[0].status == CycleStatus.OK
        assert set(results[1:]) <= {Decimal("2010.00"), Decimal("2020.00")}
        assert await pricing.quote(1, 1, 1) == Decimal("2020.00")


class TestServedApplication:
    @respx.mock
    def test_background_ingestion_feeds_the_price_endpoint(self, sentinel_config, feed_item):
        respx.get(FEED_URL).mock(return_value=_feed(feed_item(customerSellsAt=2010.0)))
        config = sentinel_config.model_copy(
            update={
                "ingestion": sentinel_config.ingestion.model_copy(
                    update={"enabled": True, "interval_seconds": 0.05}
                )
            }
        )

        with TestClient(create_app(config=config)) as client:
            body = None
            for _ in range(100):
                resp = client.get("/price", params={"productId": 1, "gram": 5, "factor": 0.916})
                if resp.status_code == 200:
                    body = resp.json()
                    break
                time.sleep(0.02)
            health = client.get("/health").json()

        assert body == {"price": "9205.80"}
        assert health["ingestion_enabled"] is True
        assert health["last_success_at"] is not None
