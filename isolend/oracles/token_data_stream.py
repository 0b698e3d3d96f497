"""Token data stream price oracle: on-chain latest-round price feed."""
from __future__ import annotations

import asyncio
import logging

from ..chains.evm.abis import TOKEN_DATA_STREAM_ABI
from ..fixed_point import to_usd
from ..interfaces.chain import ChainReader
from ..models import Price, TokenAmount

logger = logging.getLogger(__name__)

STABLE_PRICE_DECIMALS = 8


class TokenDataStreamOracle:
    """Resolve token prices from the protocol's token data stream contract."""

    def __init__(
        self,
        reader: ChainReader,
        oracle_address: str,
        stable_symbols: tuple[str, ...] = ("USDC", "USDT"),
    ) -> None:
        self._reader = reader
        self.oracle_address = oracle_address
        self.stable_symbols = {s.upper() for s in stable_symbols}

    async def get_price(self, token: str, symbol: str = "") -> Price:
        """Latest price for ``token``.

        Never raises: a token missing from the feed yields an unavailable
        (zero) price, or exactly 1.0 when ``symbol`` is a whitelisted stable.
        """
        try:
            round_data, decimals = await asyncio.gather(
                self._reader.read_contract(
                    self.oracle_address, TOKEN_DATA_STREAM_ABI, "latestRoundData", (token,)
                ),
                self._reader.read_contract(
                    self.oracle_address, TOKEN_DATA_STREAM_ABI, "decimals", (token,)
                ),
            )
            return Price(int(round_data[1]), int(decimals))
        except Exception as e:
            if symbol.upper() in self.stable_symbols:
                logger.debug("Price feed missing for stable %s, using 1.0: %s", symbol, e)
                return Price(10**STABLE_PRICE_DECIMALS, STABLE_PRICE_DECIMALS)
            logger.warning("Price unavailable for %s (%s): %s", symbol or token, token, e)
            return Price.unavailable()


def usd_value(amount: TokenAmount, price: Price) -> float | None:
    """USD value of ``amount``, or None when the price is unavailable."""
    if not price.is_available:
        return None
    return to_usd(amount, price)
