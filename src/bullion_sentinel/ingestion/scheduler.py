"""Fixed-interval ingestion loop: fetch, truncate, persist row by row."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Protocol

from bullion_sentinel.core.exceptions import FetchError, InsertError
from bullion_sentinel.core.models import (
    CycleStatus,
    CycleSummary,
    Quote,
    SchedulerState,
)
from bullion_sentinel.ingestion.store import QuoteStoreProtocol

logger = logging.getLogger(__name__)


class QuoteSource(Protocol):
    """Anything that can produce a batch of quotes."""

    async def fetch_batch(self) -> Sequence[Quote]: ...


class IngestionScheduler:
    """Drives a quote source on a fixed interval and writes through a store.

    Cycles never overlap: the loop waits for a cycle's persist phase to finish
    before sleeping until the next tick. A failed fetch skips the cycle; a
    failed row is logged and the remaining rows are still attempted.
    """

    def __init__(
        self,
        source: QuoteSource,
        store: QuoteStoreProtocol,
        interval_seconds: float = 15.0,
        batch_cap: int = 8,
        fetch_timeout_seconds: float = 30.0,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if batch_cap < 1:
            raise ValueError("batch_cap must be >= 1")
        self._source = source
        self._store = store
        self.interval_seconds = interval_seconds
        self.batch_cap = batch_cap
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.state = SchedulerState.IDLE
        self.last_summary: CycleSummary | None = None
        self.last_success_at: datetime | None = None
        self._stop = asyncio.Event()

    # --- Single cycle ---

    async def run_cycle(self) -> CycleSummary:
        """Run one fetch-normalize-persist pass and return what it did."""
        started_at = datetime.now(UTC)
        self.state = SchedulerState.FETCHING
        try:
            try:
                batch = await asyncio.wait_for(
                    self._source.fetch_batch(), timeout=self.fetch_timeout_seconds
                )
            except TimeoutError:
                error = f"fetch exceeded {self.fetch_timeout_seconds}s"
                logger.warning("Quote fetch timed out, skipping cycle: %s", error)
                return self._finish(
                    CycleSummary(
                        status=CycleStatus.FETCH_FAILED,
                        started_at=started_at,
                        finished_at=datetime.now(UTC),
                        error=error,
                    )
                )
            except FetchError as e:
                logger.warning("Quote fetch failed, skipping cycle: %s", e)
                return self._finish(
                    CycleSummary(
                        status=CycleStatus.FETCH_FAILED,
                        started_at=started_at,
                        finished_at=datetime.now(UTC),
                        error=str(e),
                    )
                )

            self.state = SchedulerState.PERSISTING
            retained = list(batch)[: self.batch_cap]
            inserted = 0
            failed = 0
            for quote in retained:
                try:
                    await self._store.insert_quote(quote)
                    inserted += 1
                except InsertError as e:
                    failed += 1
                    logger.warning(
                        "Dropping quote for product %d: %s", quote.product_id, e
                    )

            summary = CycleSummary(
                status=CycleStatus.OK,
                fetched=len(batch),
                attempted=len(retained),
                inserted=inserted,
                failed=failed,
                started_at=started_at,
                finished_at=datetime.now(UTC),
            )
            if summary.dropped:
                logger.debug("Batch cap %d dropped %d record(s)", self.batch_cap, summary.dropped)
            logger.info(
                "Quotes refreshed: %d inserted, %d failed, %d fetched",
                inserted, failed, len(batch),
            )
            return self._finish(summary)
        finally:
            self.state = SchedulerState.IDLE

    def _finish(self, summary: CycleSummary) -> CycleSummary:
        self.last_summary = summary
        if summary.status == CycleStatus.OK:
            self.last_success_at = summary.finished_at
        return summary

    # --- Loop ---

    async def run_forever(self) -> None:
        """Run a cycle now and then on every interval tick until stop().

        Ticks are anchored to the loop start, so a slow cycle does not shift
        later ones; ticks that elapse while a cycle is running are skipped. A cycle
        that raises is logged and the loop carries on at the next tick.
        """
        loop = asyncio.get_running_loop()
        anchor = loop.time()
        logger.info(
            "Starting ingestion loop: interval=%ss batch_cap=%d",
            self.interval_seconds, self.batch_cap,
        )
        while not self._stop.is_set():
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Ingestion cycle crashed, continuing on next tick")

            elapsed = loop.time() - anchor
            ticks = int(elapsed // self.interval_seconds) + 1
            delay = anchor + ticks * self.interval_seconds - loop.time()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=max(delay, 0))
            except TimeoutError:
                continue
        logger.info("Ingestion loop stopped")

    def stop(self) -> None:
        """Ask the loop to exit at its next wait point."""
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def seconds_since_success(self) -> float | None:
        """Age of the last successful cycle, or None if none succeeded yet."""
        if self.last_success_at is None:
            return None
        return (datetime.now(UTC) - self.last_success_at).total_seconds()
