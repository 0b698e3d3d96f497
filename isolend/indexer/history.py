"""Portfolio history reconstruction from indexed snapshots and events. No I/O."""
from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from ..fixed_point import format_units, to_display
from ..models import ActivityEvent, ActivityType, HistoryPoint, IndexedSnapshot, Position
from .parser import rate_percent


@dataclass(frozen=True)
class PoolShare:
    """An account's current fraction of one pool's supply and debt."""

    pool_address: str
    router_address: str
    deposit_ratio: float
    borrow_ratio: float
    borrow_decimals: int
    price: float

    def matches(self, snapshot: IndexedSnapshot) -> bool:
        return snapshot.router.lower() == self.router_address.lower() or (
            snapshot.lending_pool.lower() == self.pool_address.lower()
        )


@dataclass(frozen=True)
class CollateralValuation:
    decimals: int
    price: float


def find_latest_before(snapshots: Sequence[IndexedSnapshot], timestamp: int) -> IndexedSnapshot | None:
    """Latest snapshot with ``timestamp <= timestamp``. ``snapshots`` must be oldest first."""
    index = bisect.bisect_right([s.timestamp for s in snapshots], timestamp)
    return snapshots[index - 1] if index else None


def pool_share(position: Position) -> PoolShare:
    pool = position.pool
    decimals = pool.borrow_token.decimals
    total_supply = format_units(pool.total_supply_assets, decimals)
    total_borrow = format_units(pool.total_borrow_assets, decimals)
    deposit = format_units(position.deposit_amount, decimals)
    borrow = format_units(position.borrow_amount, decimals)
    return PoolShare(
        pool_address=pool.pool_address,
        router_address=pool.router_address,
        deposit_ratio=deposit / total_supply if total_supply > 0 else 0.0,
        borrow_ratio=borrow / total_borrow if total_borrow > 0 else 0.0,
        borrow_decimals=decimals,
        price=to_display(pool.borrow_price),
    )


def estimate_position_history(
    snapshots: Iterable[IndexedSnapshot], shares: Iterable[PoolShare]
) -> tuple[list[HistoryPoint], list[HistoryPoint]]:
    """Estimated deposit and borrow USD series for an account.

    The account's current share of each pool is applied to that pool's
    historical totals. At every snapshot timestamp each pool contributes its
    latest snapshot at or before that time; APYs are weighted by USD value.
    """
    shares = list(shares)
    by_pool: dict[int, list[IndexedSnapshot]] = {}
    for snapshot in snapshots:
        for i, share in enumerate(shares):
            if share.matches(snapshot):
                by_pool.setdefault(i, []).append(snapshot)
                break
    for series in by_pool.values():
        series.sort(key=lambda s: s.timestamp)

    timestamps = sorted({s.timestamp for series in by_pool.values() for s in series})

    deposits: list[HistoryPoint] = []
    borrows: list[HistoryPoint] = []
    for ts in timestamps:
        total_deposit = total_borrow = 0.0
        weighted_apy = weighted_rate = 0.0
        for i, series in by_pool.items():
            snap = find_latest_before(series, ts)
            if snap is None:
                continue
            share = shares[i]
            deposit = format_units(snap.total_supply_assets, share.borrow_decimals) * share.deposit_ratio * share.price
            borrow = format_units(snap.total_borrow_assets, share.borrow_decimals) * share.borrow_ratio * share.price
            total_deposit += deposit
            total_borrow += borrow
            weighted_apy += rate_percent(snap.supply_apr) * deposit
            weighted_rate += rate_percent(snap.borrow_rate) * borrow

        deposits.append(
            HistoryPoint(
                timestamp=ts,
                total_deposits=total_deposit,
                supply_apy=weighted_apy / total_deposit if total_deposit > 0 else 0.0,
            )
        )
        borrows.append(
            HistoryPoint(
                timestamp=ts,
                total_borrows=total_borrow,
                borrow_rate=weighted_rate / total_borrow if total_borrow > 0 else 0.0,
            )
        )
    return deposits, borrows


def collateral_history(
    events: Iterable[ActivityEvent],
    user: str,
    valuations: Mapping[str, CollateralValuation],
) -> list[HistoryPoint]:
    """Exact collateral USD series from supply/withdraw collateral events.

    Keeps a running balance per pool, clamped at zero. ``valuations`` is
    keyed by lower-cased pool address; events for other pools are ignored.
    """
    user_key = user.lower()
    signed: list[tuple[int, str, int]] = []
    for event in events:
        if event.user.lower() != user_key:
            continue
        pool = event.pool.lower()
        if pool not in valuations:
            continue
        if event.action is ActivityType.SUPPLY_COLLATERAL:
            signed.append((event.timestamp, pool, event.amount))
        elif event.action is ActivityType.WITHDRAW_COLLATERAL:
            signed.append((event.timestamp, pool, -event.amount))

    signed.sort(key=lambda e: e[0])

    balances: dict[str, int] = {}
    points: list[HistoryPoint] = []
    for timestamp, pool, delta in signed:
        balances[pool] = max(balances.get(pool, 0) + delta, 0)
        total = sum(
            format_units(balance, valuations[p].decimals) * valuations[p].price
            for p, balance in balances.items()
        )
        points.append(HistoryPoint(timestamp=timestamp, total_collateral=total))
    return points
