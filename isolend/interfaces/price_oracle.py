"""Price oracle protocol: price feed abstraction."""
from typing import Protocol

from ..models import Price


class PriceOracle(Protocol):
    """Abstract interface for fetching token prices."""

    async def get_price(self, token: str, symbol: str = "") -> Price: ...
