"""Position aggregator: per-pool account positions and cross-pool totals."""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Mapping

from ..chains.evm.abis import ERC20_ABI, LENDING_POOL_ROUTER_ABI
from ..config import CollateralTokenConfig
from ..context import ClientContext
from ..fixed_point import shares_to_assets
from ..models import (
    ZERO_ADDRESS,
    CollateralItem,
    PoolSnapshot,
    PortfolioSummary,
    Position,
    TokenAmount,
    TokenInfo,
)
from ..oracles import usd_value
from .pool_service import PoolSnapshotReader

logger = logging.getLogger(__name__)


def weighted_average(pairs: Iterable[tuple[float, float]]) -> float:
    """Average of ``(value, weight)`` pairs; 0 when the total weight is 0."""
    total_weight = 0.0
    acc = 0.0
    for value, weight in pairs:
        acc += value * weight
        total_weight += weight
    return acc / total_weight if total_weight > 0 else 0.0


def summarize(
    account: str,
    positions: Iterable[Position],
    failed_pools: Iterable[str] = (),
) -> PortfolioSummary:
    """Pure cross-pool aggregation. Entries with unavailable USD values are excluded."""
    positions = tuple(positions)
    failed = tuple(failed_pools)

    deposits = [p for p in positions if p.deposit_amount > 0 and p.deposit_usd is not None]
    loans = [p for p in positions if p.borrow_amount > 0 and p.borrow_usd is not None]

    total_deposit = sum(p.deposit_usd for p in deposits)
    total_borrow = sum(p.borrow_usd for p in loans)
    total_collateral = sum(p.collateral_usd for p in positions)

    return PortfolioSummary(
        account=account,
        positions=positions,
        total_deposit_usd=total_deposit,
        total_borrow_usd=total_borrow,
        total_collateral_usd=total_collateral,
        net_supply_apy=weighted_average((p.pool.supply_apy, p.deposit_usd) for p in deposits),
        net_borrow_rate=weighted_average((p.pool.borrow_apy, p.borrow_usd) for p in loans),
        partial=bool(failed),
        failed_pools=failed,
    )


class PositionAggregator:
    """Resolve an account's deposits, debts and collateral across pools."""

    def __init__(
        self,
        context: ClientContext,
        pool_reader: PoolSnapshotReader,
        collateral_tokens: tuple[CollateralTokenConfig, ...] = (),
    ) -> None:
        self._context = context
        self._pools = pool_reader
        self._collateral_tokens = tuple(
            TokenInfo(address=t.address, symbol=t.symbol, name=t.symbol, decimals=t.decimals)
            for t in collateral_tokens
        )

    async def _read(self, address: str, abi, function: str, *args):
        return await self._context.reader.read_contract(address, abi, function, args)

    async def _collateral_items(
        self, pool: PoolSnapshot, position_address: str
    ) -> tuple[CollateralItem, ...]:
        """Balances of every protocol-known collateral token held by the position."""
        tokens = self._collateral_tokens or (pool.collateral_token,)
        balances = await asyncio.gather(
            *(self._read(t.address, ERC20_ABI, "balanceOf", position_address) for t in tokens)
        )

        held = [(t, int(b)) for t, b in zip(tokens, balances) if int(b) > 0]
        if not held:
            return ()

        oracle = self._pools.oracle_for(pool)
        prices = await asyncio.gather(*(oracle.get_price(t.address, t.symbol) for t, _ in held))

        items: list[CollateralItem] = []
        for (token, amount), price in zip(held, prices):
            items.append(
                CollateralItem(
                    pool_address=pool.pool_address,
                    token=token,
                    amount=amount,
                    price=price,
                    usd_value=usd_value(TokenAmount(amount, token.decimals), price),
                )
            )
        return tuple(items)

    async def read_position(self, pool: PoolSnapshot, account: str) -> Position:
        """Read one account's position in one pool."""
        router = pool.router_address

        user_shares, total_shares, position_address = await asyncio.gather(
            self._read(pool.shares_token, ERC20_ABI, "balanceOf", account),
            self._read(pool.shares_token, ERC20_ABI, "totalSupply"),
            self._read(router, LENDING_POOL_ROUTER_ABI, "addressPositions", account),
        )
        user_shares = int(user_shares)
        deposit_amount = shares_to_assets(user_shares, int(total_shares), pool.total_supply_assets)

        borrow_shares = 0
        borrow_amount = 0
        collaterals: tuple[CollateralItem, ...] = ()
        has_position = str(position_address).lower() != ZERO_ADDRESS

        if has_position:
            borrow_shares, total_borrow_shares, collaterals = await asyncio.gather(
                self._read(router, LENDING_POOL_ROUTER_ABI, "userBorrowShares", account),
                self._read(router, LENDING_POOL_ROUTER_ABI, "totalBorrowShares"),
                self._collateral_items(pool, position_address),
            )
            borrow_shares = int(borrow_shares)
            borrow_amount = shares_to_assets(
                borrow_shares, int(total_borrow_shares), pool.total_borrow_assets
            )

        decimals = pool.borrow_token.decimals
        return Position(
            pool=pool,
            account=account,
            deposit_shares=user_shares,
            deposit_amount=deposit_amount,
            borrow_shares=borrow_shares,
            borrow_amount=borrow_amount,
            position_address=str(position_address),
            collaterals=collaterals,
            deposit_usd=usd_value(TokenAmount(deposit_amount, decimals), pool.borrow_price),
            borrow_usd=usd_value(TokenAmount(borrow_amount, decimals), pool.borrow_price),
        )

    async def aggregate(
        self, snapshots: Mapping[str, PoolSnapshot | None], account: str
    ) -> PortfolioSummary:
        """Read positions in every loaded pool concurrently and total them.

        Pools that are still loading, or whose position reads fail,
        contribute nothing and mark the summary as partial.
        """
        failed = [addr for addr, snap in snapshots.items() if snap is None]
        loaded = [snap for snap in snapshots.values() if snap is not None]

        results = await asyncio.gather(
            *(self.read_position(snap, account) for snap in loaded), return_exceptions=True
        )

        positions: list[Position] = []
        for snap, result in zip(loaded, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    "Position read failed for %s in pool %s: %s", account, snap.pool_address, result
                )
                failed.append(snap.pool_address)
                continue
            positions.append(result)

        summary = summarize(account, positions, failed)
        logger.info(
            "Portfolio %s: deposits: $%.2f  borrows: $%.2f  collateral: $%.2f%s",
            account,
            summary.total_deposit_usd,
            summary.total_borrow_usd,
            summary.total_collateral_usd,
            " (partial)" if summary.partial else "",
        )
        return summary
