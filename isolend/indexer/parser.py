"""Pure parsing functions for indexer GraphQL responses. No I/O."""
from __future__ import annotations

from typing import Any, Iterable

from ..fixed_point import format_units
from ..models import ActivityEvent, ActivityType, HistoryPoint, IndexedSnapshot

WAD = 10**18

# (collection, action, field holding the user-facing amount)
EVENT_COLLECTIONS: tuple[tuple[str, ActivityType, str], ...] = (
    ("supplyLiquidityEvents", ActivityType.DEPOSIT, "amount"),
    ("withdrawLiquidityEvents", ActivityType.WITHDRAW, "amount"),
    ("borrowDebtEvents", ActivityType.BORROW, "userAmount"),
    ("repayByPositionEvents", ActivityType.REPAY, "amount"),
    ("supplyCollateralEvents", ActivityType.SUPPLY_COLLATERAL, "amount"),
    ("withdrawCollateralEvents", ActivityType.WITHDRAW_COLLATERAL, "amount"),
)


def collection_items(data: dict[str, Any], collection: str) -> list[dict[str, Any]]:
    """``data[collection].items``, or an empty list when any level is missing."""
    node = data.get(collection) or {}
    return list(node.get("items") or [])


def parse_pool_addresses(data: dict[str, Any]) -> list[str]:
    """Lower-cased, de-duplicated pool addresses in indexer order."""
    seen: dict[str, None] = {}
    for item in collection_items(data, "lendingPools"):
        address = str(item.get("id", "")).lower()
        if address:
            seen.setdefault(address, None)
    return list(seen)


def parse_event(item: dict[str, Any], action: ActivityType, amount_field: str = "amount") -> ActivityEvent:
    return ActivityEvent(
        id=str(item.get("id", "")),
        action=action,
        amount=int(item.get(amount_field) or 0),
        timestamp=int(item.get("timestamp") or 0),
        tx_hash=str(item.get("txHash", "")),
        user=str(item.get("user", "")),
        pool=str(item.get("lendingPool", "")),
    )


def parse_activity(
    data: dict[str, Any],
    user: str | None = None,
    pool: str | None = None,
) -> list[ActivityEvent]:
    """Merge every event collection into one newest-first log.

    ``user`` and ``pool`` filter case-insensitively when given.
    """
    user_key = user.lower() if user else None
    pool_key = pool.lower() if pool else None

    events: list[ActivityEvent] = []
    for collection, action, amount_field in EVENT_COLLECTIONS:
        for item in collection_items(data, collection):
            event = parse_event(item, action, amount_field)
            if user_key and event.user.lower() != user_key:
                continue
            if pool_key and event.pool.lower() != pool_key:
                continue
            events.append(event)

    events.sort(key=lambda e: e.timestamp, reverse=True)
    return events


def parse_snapshot(item: dict[str, Any]) -> IndexedSnapshot:
    return IndexedSnapshot(
        timestamp=int(item.get("timestamp") or 0),
        lending_pool=str(item.get("lendingPool", "")),
        router=str(item.get("router", "")),
        total_supply_assets=int(item.get("totalSupplyAssets") or 0),
        total_borrow_assets=int(item.get("totalBorrowAssets") or 0),
        total_collateral=int(item.get("totalCollateral") or 0),
        supply_apr=int(item.get("supplyAPR") or 0),
        borrow_rate=int(item.get("borrowRate") or 0),
        block_number=int(item.get("blockNumber") or 0),
    )


def parse_pool_snapshots(data: dict[str, Any], address: str | None = None) -> list[IndexedSnapshot]:
    """Oldest-first snapshots, optionally restricted to one pool (matched on pool or router)."""
    snapshots = [parse_snapshot(item) for item in collection_items(data, "poolSnapshots")]
    if address:
        snapshots = filter_snapshots(snapshots, address)
    snapshots.sort(key=lambda s: s.timestamp)
    return snapshots


def filter_snapshots(snapshots: Iterable[IndexedSnapshot], address: str) -> list[IndexedSnapshot]:
    key = address.lower()
    return [s for s in snapshots if s.lending_pool.lower() == key or s.router.lower() == key]


def rate_percent(value: int) -> float:
    """1e18-scaled rate as a percentage."""
    return value / WAD * 100


def snapshot_to_point(
    snapshot: IndexedSnapshot, borrow_decimals: int, collateral_decimals: int
) -> HistoryPoint:
    """Pool-level history point in display units."""
    return HistoryPoint(
        timestamp=snapshot.timestamp,
        total_deposits=format_units(snapshot.total_supply_assets, borrow_decimals),
        total_borrows=format_units(snapshot.total_borrow_assets, borrow_decimals),
        total_collateral=format_units(snapshot.total_collateral, collateral_decimals),
        supply_apy=rate_percent(snapshot.supply_apr),
        borrow_rate=rate_percent(snapshot.borrow_rate),
    )
