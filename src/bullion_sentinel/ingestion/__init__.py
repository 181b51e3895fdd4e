"""Quote ingestion: upstream client, storage, and the refresh loop."""

from bullion_sentinel.ingestion.client import QuoteSourceClient, parse_timestamp
from bullion_sentinel.ingestion.scheduler import IngestionScheduler, QuoteSource
from bullion_sentinel.ingestion.store import (
    QuoteStoreProtocol,
    SqliteQuoteStore,
    create_store,
)

__all__ = [
    "IngestionScheduler",
    "QuoteSource",
    "QuoteSourceClient",
    "QuoteStoreProtocol",
    "SqliteQuoteStore",
    "create_store",
    "parse_timestamp",
]
