"""Unit tests for portfolio history reconstruction."""
from __future__ import annotations

import pytest

from conftest import POOL, ROUTER, indexed_snapshot
from isolend.indexer.history import (
    CollateralValuation,
    PoolShare,
    collateral_history,
    estimate_position_history,
    find_latest_before,
)
from isolend.models import ActivityEvent, ActivityType, IndexedSnapshot

USER = "0xA00000000000000000000000000000000000000A"
OTHER_POOL = "0xdddd000000000000000000000000000000000004"


def _share(deposit_ratio: float = 0.1, borrow_ratio: float = 0.0) -> PoolShare:
    return PoolShare(
        pool_address=POOL,
        router_address=ROUTER,
        deposit_ratio=deposit_ratio,
        borrow_ratio=borrow_ratio,
        borrow_decimals=6,
        price=1.0,
    )


def _collateral(action: ActivityType, amount: int, ts: int, pool: str = POOL, user: str = USER) -> ActivityEvent:
    return ActivityEvent(id=f"{ts}", action=action, amount=amount, timestamp=ts, tx_hash="0x", user=user, pool=pool)


class TestFindLatestBefore:
    def test_picks_latest_at_or_before(self) -> None:
        series = [indexed_snapshot(ts, 0, 0) for ts in (10, 20, 30)]
        assert find_latest_before(series, 25).timestamp == 20
        assert find_latest_before(series, 30).timestamp == 30
        assert find_latest_before(series, 99).timestamp == 30

    def test_none_before_first(self) -> None:
        assert find_latest_before([indexed_snapshot(10, 0, 0)], 5) is None
        assert find_latest_before([], 5) is None


class TestEstimatePositionHistory:
    def test_applies_current_share_to_historical_totals(self) -> None:
        snapshots = [
            indexed_snapshot(100, 1_000 * 10**6, 0),
            indexed_snapshot(200, 2_000 * 10**6, 500 * 10**6),
        ]
        deposits, borrows = estimate_position_history(snapshots, [_share(0.1, 0.5)])

        assert [p.timestamp for p in deposits] == [100, 200]
        assert deposits[0].total_deposits == pytest.approx(100.0)
        assert deposits[1].total_deposits == pytest.approx(200.0)
        assert deposits[1].supply_apy == pytest.approx(5.0)
        assert borrows[0].total_borrows == 0.0
        assert borrows[0].borrow_rate == 0.0
        assert borrows[1].total_borrows == pytest.approx(250.0)
        assert borrows[1].borrow_rate == pytest.approx(10.0)

    def test_pools_carry_forward_between_snapshots(self) -> None:
        other = PoolShare(OTHER_POOL, OTHER_POOL, 1.0, 0.0, 6, 2.0)
        snapshots = [
            indexed_snapshot(100, 1_000 * 10**6, 0),
            IndexedSnapshot(150, OTHER_POOL, OTHER_POOL, 10 * 10**6, 0, 0, 0, 0),
            indexed_snapshot(200, 3_000 * 10**6, 0),
        ]
        deposits, _ = estimate_position_history(snapshots, [_share(0.1), other])

        assert [p.timestamp for p in deposits] == [100, 150, 200]
        assert deposits[1].total_deposits == pytest.approx(100.0 + 20.0)
        assert deposits[2].total_deposits == pytest.approx(300.0 + 20.0)

    def test_usd_weighted_apy(self) -> None:
        other = PoolShare(OTHER_POOL, OTHER_POOL, 1.0, 0.0, 6, 1.0)
        snapshots = [
            indexed_snapshot(100, 1_000 * 10**6, 0),
            IndexedSnapshot(100, OTHER_POOL, OTHER_POOL, 300 * 10**6, 0, 0, 15 * 10**16, 0),
        ]
        deposits, _ = estimate_position_history(snapshots, [_share(0.1), other])
        # 100 USD at 5% and 300 USD at 15%
        assert deposits[0].supply_apy == pytest.approx(12.5)

    def test_unmatched_snapshots_ignored(self) -> None:
        snapshots = [IndexedSnapshot(100, OTHER_POOL, OTHER_POOL, 10, 0, 0, 0, 0)]
        assert estimate_position_history(snapshots, [_share()]) == ([], [])


class TestCollateralHistory:
    VALUATIONS = {POOL.lower(): CollateralValuation(decimals=18, price=3000.0)}

    def test_running_balance(self) -> None:
        events = [
            _collateral(ActivityType.WITHDRAW_COLLATERAL, 10**18, 300),
            _collateral(ActivityType.SUPPLY_COLLATERAL, 2 * 10**18, 100),
            _collateral(ActivityType.SUPPLY_COLLATERAL, 10**18, 200),
        ]
        points = collateral_history(events, USER.lower(), self.VALUATIONS)
        assert [p.timestamp for p in points] == [100, 200, 300]
        assert [p.total_collateral for p in points] == pytest.approx([6_000.0, 9_000.0, 6_000.0])

    def test_balance_clamped_at_zero(self) -> None:
        events = [
            _collateral(ActivityType.WITHDRAW_COLLATERAL, 5 * 10**18, 100),
            _collateral(ActivityType.SUPPLY_COLLATERAL, 10**18, 200),
        ]
        points = collateral_history(events, USER, self.VALUATIONS)
        assert [p.total_collateral for p in points] == pytest.approx([0.0, 3_000.0])

    def test_other_users_pools_and_actions_ignored(self) -> None:
        events = [
            _collateral(ActivityType.SUPPLY_COLLATERAL, 10**18, 100, user="0xsomeoneelse"),
            _collateral(ActivityType.SUPPLY_COLLATERAL, 10**18, 100, pool=OTHER_POOL),
            _collateral(ActivityType.BORROW, 10**18, 100),
        ]
        assert collateral_history(events, USER, self.VALUATIONS) == []
