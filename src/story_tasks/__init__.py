"""Operator tasks for deployed Story Protocol contracts."""

__version__ = "0.1.0"
