"""Price oracle implementations."""
from .token_data_stream import TokenDataStreamOracle, usd_value

__all__ = ["TokenDataStreamOracle", "usd_value"]
