"""Isolated-pool lending dashboard: position valuation and transaction flows."""

__version__ = "0.1.0"
