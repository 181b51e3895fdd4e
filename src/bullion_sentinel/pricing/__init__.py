"""Price computation against the latest stored quote."""

from bullion_sentinel.pricing.service import PriceQueryService, compute_price

__all__ = ["PriceQueryService", "compute_price"]
