"""Rate-limited async HTTP client for the upstream quote feed."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import UTC, datetime

import httpx
from aiolimiter import AsyncLimiter
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bullion_sentinel.core.config import RFC3339, SourceConfig
from bullion_sentinel.core.exceptions import FetchError
from bullion_sentinel.core.models import ZERO_TIME, Quote

logger = logging.getLogger(__name__)

# Python datetimes carry microseconds; upstream may send nanoseconds
_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


class _FeedItem(BaseModel):
    """One element of the feed's ``data`` array, as sent on the wire."""

    model_config = ConfigDict(frozen=True)

    market_product_id: int = Field(alias="marketProductId")
    updated_at: str = Field(alias="updatedAt")
    customer_buys_at: float = Field(alias="customerBuysAt")
    customer_sells_at: float = Field(alias="customerSellsAt")


def parse_timestamp(raw: str, formats: Sequence[str]) -> datetime | None:
    """Parse an upstream timestamp with the first layout that accepts it.

    ``"rfc3339"`` names zone-qualified ISO-8601 timestamps; every other entry
    is a ``strptime`` pattern. Results without a zone are taken as UTC.

    Returns:
        The parsed UTC datetime, or None if no layout matched.
    """
    text = raw.strip()
    for layout in formats:
        try:
            if layout == RFC3339:
                parsed = datetime.fromisoformat(_EXCESS_FRACTION.sub(r"\1", text))
                if parsed.tzinfo is None:
                    continue
            else:
                parsed = datetime.strptime(text, layout)
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=UTC)
            return parsed.astimezone(UTC)
        except (ValueError, OverflowError):
            # Offsets that push a date past year 1 or 9999 overflow on conversion
            continue
    return None


class QuoteSourceClient:
    """Fetches quote batches from the configured upstream feed.

    No retries: a failed fetch raises FetchError and the caller skips the
    cycle. Use via ``async with QuoteSourceClient(...) as client:``.
    """

    def __init__(
        self,
        config: SourceConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._limiter = AsyncLimiter(max_rate=config.rate_limit, time_period=1.0)
        self._client = httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> QuoteSourceClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    @property
    def url(self) -> str:
        return self._config.url

    async def fetch_batch(self) -> list[Quote]:
        """Fetch and decode one batch of quotes.

        Returns:
            Quotes in upstream order. Records whose timestamp matches none of
            the configured layouts carry ZERO_TIME as observed_at.

        Raises:
            FetchError: Transport failure, non-200 status, or malformed payload.
        """
        url = self._config.url
        await self._limiter.acquire()
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise FetchError(
                f"Timed out fetching quotes from {url}",
                context={"url": url, "reason": "timeout"},
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(
                f"Transport error fetching quotes from {url}: {e}",
                context={"url": url, "reason": type(e).__name__},
            ) from e

        if response.status_code != 200:
            raise FetchError(
                f"HTTP {response.status_code} from {url}",
                context={"url": url, "status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise FetchError(
                f"Quote feed returned invalid JSON: {e}",
                context={"url": url, "reason": "invalid_json"},
            ) from e

        return self.decode(payload)

    def decode(self, payload: object) -> list[Quote]:
        """Decode a feed response body into Quote records.

        Raises:
            FetchError: If the body is not ``{"data": [...]}`` or any item is
                malformed (missing fields, wrong types, negative prices).
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise FetchError(
                "Quote feed payload must be an object with a 'data' array",
                context={"url": self._config.url, "reason": "missing_data"},
            )

        quotes: list[Quote] = []
        for index, raw in enumerate(payload["data"]):
            try:
                item = _FeedItem.model_validate(raw)
                quotes.append(
                    Quote(
                        product_id=item.market_product_id,
                        observed_at=self._observed_at(item),
                        buy_price=item.customer_buys_at,
                        sell_price=item.customer_sells_at,
                    )
                )
            except ValidationError as e:
                raise FetchError(
                    f"Malformed quote at index {index}: {e.error_count()} validation error(s)",
                    context={"url": self._config.url, "reason": "invalid_item", "index": index},
                ) from e
            except ArithmeticError as e:
                raise FetchError(
                    f"Malformed quote at index {index}: {e!r}",
                    context={"url": self._config.url, "reason": "invalid_item", "index": index},
                ) from e
        return quotes

    def _observed_at(self, item: _FeedItem) -> datetime:
        parsed = parse_timestamp(item.updated_at, self._config.timestamp_formats)
        if parsed is None:
            logger.warning(
                "Unparseable updatedAt %r for product %d, using zero time",
                item.updated_at, item.market_product_id,
            )
            return ZERO_TIME
        return parsed
