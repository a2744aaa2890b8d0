"""PIX checkout relay: gateway transactions, webhook reconciliation and attribution."""

__version__ = "0.1.0"
