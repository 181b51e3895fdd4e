"""bullion-sentinel: fresh precious-metal quotes and price computation."""

__version__ = "0.1.0"
