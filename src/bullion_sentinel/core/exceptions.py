"""Custom exception hierarchy for bullion-sentinel."""

from typing import Any


class BullionSentinelError(Exception):
    """Base exception for all bullion-sentinel errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(BullionSentinelError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str, the config field that failed validation
        value: Any, the invalid value
    """


class FetchError(BullionSentinelError):
    """Upstream quote feed unreachable or payload malformed.

    Policy: log and skip the ingestion cycle. The next tick is the retry.

    Context keys:
        url: str, the feed URL
        status_code: int | None, HTTP status if a response was received
        reason: str, what went wrong
    """


class StorageError(BullionSentinelError):
    """Database operation failed.

    Context keys:
        operation: str, "insert", "query", "migrate", etc.
        table: str, the table involved
    """


class SchemaError(StorageError):
    """Schema or product catalog could not be created at startup.

    Policy: fatal. The process must not serve traffic.
    """


class InsertError(StorageError):
    """A single quote row could not be persisted.

    Policy: log and continue. Sibling rows in the same batch are unaffected.

    Context keys:
        product_id: int, the product of the rejected row
    """


class QuoteNotFound(StorageError):
    """No quote row exists for the requested product.

    Context keys:
        product_id: int
    """


class PriceUnavailable(BullionSentinelError):
    """A price cannot be computed because no quote is known for the product.

    Policy: request-level failure, never a process failure.

    Context keys:
        product_id: int
    """


class QuoteValidationError(BullionSentinelError):
    """Caller supplied an invalid multiplier (gram or purity factor).

    Context keys:
        field: str, "gram" or "factor"
        value: Any, the rejected value
    """
