"""bullion_sentinel.core: foundation types, config, and exceptions."""

from bullion_sentinel.core.config import (
    APIConfig,
    CatalogConfig,
    IngestionConfig,
    SentinelConfig,
    SourceConfig,
    StorageConfig,
    load_config,
)
from bullion_sentinel.core.exceptions import (
    BullionSentinelError,
    ConfigError,
    FetchError,
    InsertError,
    PriceUnavailable,
    QuoteNotFound,
    QuoteValidationError,
    SchemaError,
    StorageError,
)
from bullion_sentinel.core.models import (
    PRICE_PRECISION,
    ZERO_TIME,
    CycleStatus,
    CycleSummary,
    Product,
    ProductId,
    Quote,
    SchedulerState,
    StorageBackend,
)

__all__ = [
    # Type aliases and constants
    "ProductId",
    "PRICE_PRECISION",
    "ZERO_TIME",
    # Enums
    "StorageBackend",
    "SchedulerState",
    "CycleStatus",
    # Models
    "Product",
    "Quote",
    "CycleSummary",
    # Config
    "SentinelConfig",
    "SourceConfig",
    "StorageConfig",
    "IngestionConfig",
    "CatalogConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "BullionSentinelError",
    "ConfigError",
    "FetchError",
    "StorageError",
    "SchemaError",
    "InsertError",
    "QuoteNotFound",
    "PriceUnavailable",
    "QuoteValidationError",
]
