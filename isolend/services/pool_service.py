"""Pool snapshot reader: resolves a pool's economic state from chain reads."""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from ..chains.evm.abis import (
    ERC20_ABI,
    INTEREST_RATE_MODEL_ABI,
    LENDING_POOL_ABI,
    LENDING_POOL_FACTORY_ABI,
    LENDING_POOL_ROUTER_ABI,
)
from ..context import ClientContext
from ..errors import PoolUnavailable
from ..interfaces.price_oracle import PriceOracle
from ..models import PoolSnapshot, TokenInfo
from ..oracles import TokenDataStreamOracle

logger = logging.getLogger(__name__)

WAD = 10**18
DEFAULT_RESERVE_FACTOR = 0.10


def compute_rates(
    total_supply: int, total_borrow: int, borrow_rate: int, reserve_factor: int
) -> tuple[float, float, float]:
    """Return ``(borrow_apy, supply_apy, utilization)`` as percentages / fraction.

    A reserve factor reading of exactly zero means "use the protocol
    default" (10%), not "no reserve".
    """
    borrow_apy = borrow_rate / WAD * 100 if borrow_rate else 0.0
    utilization = total_borrow / total_supply if total_supply else 0.0
    if total_supply == 0 or not borrow_rate:
        return borrow_apy, 0.0, utilization
    rf = reserve_factor / WAD if reserve_factor > 0 else DEFAULT_RESERVE_FACTOR
    supply_apy = (borrow_rate / WAD) * utilization * (1 - rf) * 100
    return borrow_apy, supply_apy, utilization


class PoolSnapshotReader:
    """Read pool snapshots. Each step waits for the address produced by the previous one."""

    def __init__(self, context: ClientContext, stable_symbols: tuple[str, ...] = ("USDC", "USDT")) -> None:
        self._context = context
        self._stable_symbols = stable_symbols
        self._token_cache: dict[str, TokenInfo] = {}

    async def _read(self, address: str, abi, function: str, *args):
        return await self._context.reader.read_contract(address, abi, function, args)

    async def token_info(self, address: str) -> TokenInfo:
        """ERC-20 metadata (cached, since symbol, name and decimals never change)."""
        key = address.lower()
        if key in self._token_cache:
            return self._token_cache[key]

        symbol, name, decimals = await asyncio.gather(
            self._read(address, ERC20_ABI, "symbol"),
            self._read(address, ERC20_ABI, "name"),
            self._read(address, ERC20_ABI, "decimals"),
        )
        info = TokenInfo(address=address, symbol=str(symbol), name=str(name), decimals=int(decimals))
        self._token_cache[key] = info
        return info

    def _oracle(self, oracle_address: str) -> PriceOracle:
        return TokenDataStreamOracle(self._context.reader, oracle_address, self._stable_symbols)

    def oracle_for(self, snapshot: PoolSnapshot) -> PriceOracle:
        return self._oracle(snapshot.oracle_address)

    async def read_snapshot(self, pool_address: str) -> PoolSnapshot:
        """Read one pool. Raises PoolUnavailable; never returns half-populated data."""
        try:
            return await self._read_snapshot(pool_address)
        except PoolUnavailable:
            raise
        except Exception as e:
            raise PoolUnavailable(pool_address, str(e).split("\n")[0]) from e

    async def _read_snapshot(self, pool_address: str) -> PoolSnapshot:
        # Step 1: router
        router = await self._read(pool_address, LENDING_POOL_ABI, "router")

        # Step 2: router state
        (
            borrow_token_addr,
            collateral_token_addr,
            total_supply,
            total_borrow,
            total_borrow_shares,
            shares_token,
            ltv,
            factory,
        ) = await asyncio.gather(
            self._read(router, LENDING_POOL_ROUTER_ABI, "borrowToken"),
            self._read(router, LENDING_POOL_ROUTER_ABI, "collateralToken"),
            self._read(router, LENDING_POOL_ROUTER_ABI, "totalSupplyAssets"),
            self._read(router, LENDING_POOL_ROUTER_ABI, "totalBorrowAssets"),
            self._read(router, LENDING_POOL_ROUTER_ABI, "totalBorrowShares"),
            self._read(router, LENDING_POOL_ROUTER_ABI, "sharesToken"),
            self._read(router, LENDING_POOL_ROUTER_ABI, "ltv"),
            self._read(router, LENDING_POOL_ROUTER_ABI, "factory"),
        )
        total_supply = int(total_supply)
        total_borrow = int(total_borrow)

        # Step 3: token metadata, share supply, factory collaborators
        borrow_token, collateral_token, total_supply_shares, irm, oracle_address = await asyncio.gather(
            self.token_info(borrow_token_addr),
            self.token_info(collateral_token_addr),
            self._read(shares_token, ERC20_ABI, "totalSupply"),
            self._read(factory, LENDING_POOL_FACTORY_ABI, "interestRateModel"),
            self._read(factory, LENDING_POOL_FACTORY_ABI, "tokenDataStream"),
        )

        # Step 4: rate model, skipped on an empty side where the rate is undefined
        borrow_rate = 0
        reserve_factor = 0
        if total_supply > 0 and total_borrow > 0:
            borrow_rate, reserve_factor = await asyncio.gather(
                self._read(irm, INTEREST_RATE_MODEL_ABI, "calculateBorrowRate", router, total_supply, total_borrow),
                self._read(irm, INTEREST_RATE_MODEL_ABI, "tokenReserveFactor", router),
            )

        # Steps 5-7
        borrow_apy, supply_apy, utilization = compute_rates(
            total_supply, total_borrow, int(borrow_rate), int(reserve_factor)
        )

        oracle = self._oracle(oracle_address)
        borrow_price, collateral_price = await asyncio.gather(
            oracle.get_price(borrow_token.address, borrow_token.symbol),
            oracle.get_price(collateral_token.address, collateral_token.symbol),
        )

        snapshot = PoolSnapshot(
            pool_address=pool_address,
            router_address=router,
            factory_address=factory,
            interest_rate_model=irm,
            oracle_address=oracle_address,
            shares_token=shares_token,
            borrow_token=borrow_token,
            collateral_token=collateral_token,
            total_supply_assets=total_supply,
            total_borrow_assets=total_borrow,
            total_borrow_shares=int(total_borrow_shares),
            total_supply_shares=int(total_supply_shares),
            ltv=int(ltv),
            borrow_rate=int(borrow_rate),
            reserve_factor=int(reserve_factor),
            borrow_apy=borrow_apy,
            supply_apy=supply_apy,
            utilization=utilization,
            borrow_price=borrow_price,
            collateral_price=collateral_price,
        )
        logger.debug(
            "Pool %s %s/%s: supply=%d borrow=%d borrowAPY=%.2f%% supplyAPY=%.2f%%",
            pool_address,
            collateral_token.symbol,
            borrow_token.symbol,
            total_supply,
            total_borrow,
            borrow_apy,
            supply_apy,
        )
        return snapshot

    async def read_pools(self, pool_addresses: Iterable[str]) -> dict[str, PoolSnapshot | None]:
        """Read many pools concurrently. A failed pool maps to None (still loading)."""
        addresses = list(pool_addresses)
        results = await asyncio.gather(
            *(self.read_snapshot(addr) for addr in addresses), return_exceptions=True
        )

        snapshots: dict[str, PoolSnapshot | None] = {}
        for addr, result in zip(addresses, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("Snapshot for pool %s not loaded: %s", addr, result)
                snapshots[addr] = None
            else:
                snapshots[addr] = result
        return snapshots
