"""Dashboard orchestration: pool discovery, cached refresh, reports and actions."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, Mapping

from ..config import AppConfig
from ..context import ClientContext, build_context
from ..errors import FlowStateError, ValidationError
from ..fixed_point import format_abbreviated, format_units, format_usd, shorten_address, to_display, to_raw
from ..indexer import GraphQLIndexer
from ..indexer.history import CollateralValuation, collateral_history, estimate_position_history, pool_share
from ..indexer.parser import snapshot_to_point
from ..interfaces.indexer import Indexer
from ..models import ActivityEvent, ActivityType, HistoryPoint, PoolSnapshot, PortfolioSummary, Position
from ..risk import classify_health, format_health_factor, health_factor, ltv_ratio, position_max_borrowable
from .actions import ActionBuilder
from .cache import DerivedCache, Identity
from .pool_service import PoolSnapshotReader
from .position_service import PositionAggregator
from .transactions import ActionKind, ActionRequest, FlowPhase, TransactionFlow, TransactionOrchestrator

logger = logging.getLogger(__name__)

SHARES_DECIMALS = 18

_TIER_LABELS = {
    "safe": "✅ Safe",
    "healthy": "✅ Healthy",
    "at-risk": "⚠️ At risk",
    "danger": "🚨 Danger",
}

_COLLATERAL_EVENTS = frozenset({ActivityType.SUPPLY_COLLATERAL, ActivityType.WITHDRAW_COLLATERAL})


class Dashboard:
    """Ties the readers, the cache and the per-action orchestrators together."""

    def __init__(
        self,
        config: AppConfig,
        context: ClientContext | None = None,
        indexer: Indexer | None = None,
    ) -> None:
        self._config = config
        self._context = context or build_context(config)
        self._indexer: Indexer = indexer or GraphQLIndexer(config.indexer)
        self._thresholds = config.dashboard.thresholds

        self._pools = PoolSnapshotReader(self._context, config.protocol.stable_symbols)
        self._positions = PositionAggregator(
            self._context, self._pools, config.protocol.collateral_tokens
        )
        self._actions = ActionBuilder(self._context, config.protocol.swap_fee_tier)
        self._cache = DerivedCache()
        self._orchestrators: dict[ActionKind, TransactionOrchestrator] = {}

    @property
    def account(self) -> str:
        return self._context.account

    @property
    def cache(self) -> DerivedCache:
        return self._cache

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def discover_pools(self) -> list[str]:
        """Pool addresses from the indexer, or the configured list when it is unreachable."""
        try:
            addresses = await self._indexer.list_pool_addresses()
        except Exception as e:
            logger.warning("Indexer unavailable, using configured pools: %s", e)
            addresses = []
        if not addresses:
            addresses = [a.lower() for a in self._config.protocol.pool_addresses]
        return addresses

    async def refresh_pools(self, addresses: Iterable[str] | None = None) -> dict[str, PoolSnapshot | None]:
        """Re-read pool snapshots and store the loaded ones in the cache."""
        addresses = list(addresses) if addresses is not None else await self.discover_pools()
        ticket = self._cache.ticket()
        snapshots = await self._pools.read_pools(addresses)
        for address, snapshot in snapshots.items():
            if snapshot is not None:
                self._cache.put(("pool", address.lower()), snapshot, [Identity.pool(address)], ticket)
        return snapshots

    async def pool_snapshot(self, address: str) -> PoolSnapshot:
        """Cached snapshot for one pool, read on a miss. Raises PoolUnavailable."""
        key = ("pool", address.lower())
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        ticket = self._cache.ticket()
        snapshot = await self._pools.read_snapshot(address)
        self._cache.put(key, snapshot, [Identity.pool(address)], ticket)
        return snapshot

    async def position(self, pool: PoolSnapshot, account: str | None = None) -> Position:
        account = account or self.account
        if not account:
            raise ValueError("No account: pass one explicitly or configure wallet.address")
        key = ("position", pool.pool_address.lower(), account.lower())
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        ticket = self._cache.ticket()
        position = await self._positions.read_position(pool, account)
        self._cache.put(
            key, position, [Identity.pool(pool.pool_address), Identity.account(account)], ticket
        )
        return position

    async def refresh_portfolio(self, account: str | None = None) -> PortfolioSummary:
        account = account or self.account
        if not account:
            raise ValueError("No account: pass one explicitly or configure wallet.address")
        addresses = await self.discover_pools()
        snapshots = await self.refresh_pools(addresses)
        ticket = self._cache.ticket()
        summary = await self._positions.aggregate(snapshots, account)
        depends = [Identity.account(account)] + [Identity.pool(a) for a in addresses]
        self._cache.put(("portfolio", account.lower()), summary, depends, ticket)
        for position in summary.positions:
            self._cache.put(
                ("position", position.pool.pool_address.lower(), account.lower()),
                position,
                [Identity.pool(position.pool.pool_address), Identity.account(account)],
                ticket,
            )
        return summary

    async def activity(self, pool: str | None = None, user: str | None = None) -> list[ActivityEvent]:
        return await self._indexer.fetch_activity(user=user, pool=pool)

    async def history(
        self, summary: PortfolioSummary
    ) -> tuple[list[HistoryPoint], list[HistoryPoint], list[HistoryPoint]]:
        """Deposit, borrow and collateral USD series for the summary's account."""
        positions = [p for p in summary.positions if p.deposit_amount > 0 or p.borrow_amount > 0]
        valuations = {
            p.pool.pool_address.lower(): CollateralValuation(
                decimals=p.pool.collateral_token.decimals,
                price=to_display(p.pool.collateral_price),
            )
            for p in summary.positions
            if p.has_position
        }

        snapshots, events = await asyncio.gather(
            self._indexer.fetch_pool_snapshots(),
            self._indexer.fetch_activity(user=summary.account),
        )
        deposits, borrows = estimate_position_history(snapshots, [pool_share(p) for p in positions])
        collateral = collateral_history(events, summary.account, valuations)
        return deposits, borrows, collateral

    async def pool_history(self, address: str) -> list[HistoryPoint]:
        """Indexed totals and rates of one pool, oldest first, in display units."""
        snapshots, pool = await asyncio.gather(
            self._indexer.fetch_pool_snapshots(address), self.pool_snapshot(address)
        )
        return [
            snapshot_to_point(s, pool.borrow_token.decimals, pool.collateral_token.decimals)
            for s in snapshots
        ]

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def orchestrator(self, action: ActionKind) -> TransactionOrchestrator:
        """The single orchestrator for one action slot."""
        if action not in self._orchestrators:
            self._orchestrators[action] = TransactionOrchestrator(
                self._context, action, on_success=self._after_success
            )
        return self._orchestrators[action]

    async def _after_success(self, request: ActionRequest) -> None:
        """Invalidate everything derived from the touched pool and account, then refetch.

        The portfolio is rebuilt first; the touched pool and position are then
        served from the entries it cached, or read directly when discovery
        did not list the pool.
        """
        self._cache.invalidate([Identity.pool(request.pool_address), Identity.account(self.account)])
        await self.refresh_portfolio()
        snapshot = await self.pool_snapshot(request.pool_address)
        await self.position(snapshot)
        logger.info("Refreshed %s after %s", request.pool_address, request.action.value)

    async def prepare(
        self,
        action: ActionKind,
        pool_address: str,
        amount: str,
        token_in: str | None = None,
        token_out: str | None = None,
        min_amount_out: str = "0",
    ) -> ActionRequest:
        """Parse a display amount and build the request for ``action``.

        Raises:
            InvalidAmount: ``amount`` is not a decimal numeral.
            PoolUnavailable: the pool snapshot could not be read.
        """
        pool = await self.pool_snapshot(pool_address)

        if action == ActionKind.SUPPLY:
            return await self._actions.supply(pool, to_raw(amount, pool.borrow_token.decimals))
        if action == ActionKind.SUPPLY_COLLATERAL:
            return await self._actions.supply_collateral(
                pool, to_raw(amount, pool.collateral_token.decimals)
            )

        position = await self.position(pool)
        if action == ActionKind.WITHDRAW:
            return self._actions.withdraw(pool, position, to_raw(amount, SHARES_DECIMALS))
        if action == ActionKind.WITHDRAW_COLLATERAL:
            return self._actions.withdraw_collateral(
                pool, position, to_raw(amount, pool.collateral_token.decimals)
            )
        if action == ActionKind.BORROW:
            return self._actions.borrow(pool, position, to_raw(amount, pool.borrow_token.decimals))
        if action == ActionKind.REPAY:
            return await self._actions.repay(pool, position, to_raw(amount, pool.borrow_token.decimals))
        if action == ActionKind.SWAP_COLLATERAL:
            if not token_in or not token_out:
                raise ValidationError("Swapping collateral needs both token_in and token_out")
            info_in, info_out = await asyncio.gather(
                self._pools.token_info(token_in), self._pools.token_info(token_out)
            )
            return self._actions.swap_collateral(
                pool,
                position,
                info_in.address,
                info_out.address,
                to_raw(amount, info_in.decimals),
                to_raw(min_amount_out, info_out.decimals),
            )
        raise ValueError(f"Unknown action: {action}")

    async def execute(self, request: ActionRequest) -> TransactionFlow:
        """Review and submit ``request`` on its slot's orchestrator.

        A slot that is checking allowance, approving or executing rejects a
        new request.
        """
        orchestrator = self.orchestrator(request.action)
        if orchestrator.busy or orchestrator.flow.in_flight:
            raise FlowStateError(f"{request.action.value} already in progress")
        if orchestrator.flow.phase in (FlowPhase.SUCCESS, FlowPhase.ERROR):
            orchestrator.cancel()

        flow = orchestrator.review(request)
        if flow.validation_error:
            return flow
        return await orchestrator.submit()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def render_pools(self, snapshots: Mapping[str, PoolSnapshot | None]) -> str:
        lines = [f"📋 Lending pools ({len(snapshots)})", ""]
        for address, snap in snapshots.items():
            if snap is None:
                lines.append(f"{shorten_address(address)}  loading…")
                continue
            borrow = snap.borrow_token
            lines.append(
                f"{shorten_address(address)}  {snap.collateral_token.symbol}/{borrow.symbol}"
                f"  supply {format_abbreviated(format_units(snap.total_supply_assets, borrow.decimals))}"
                f"  borrow {format_abbreviated(format_units(snap.total_borrow_assets, borrow.decimals))}"
                f"  liquidity {format_abbreviated(format_units(snap.liquidity, borrow.decimals))}"
                f"  util {snap.utilization_percent:.2f}%"
                f"  LTV {snap.ltv_percent:.0f}%"
                f"  APY {snap.supply_apy:.2f}% / {snap.borrow_apy:.2f}%"
            )
        lines += ["", f"{self._now_str()} UTC"]
        return "\n".join(lines)

    def render_position(self, position: Position) -> str:
        pool = position.pool
        # Debt without a borrow-token price cannot be rated.
        if position.borrow_amount > 0 and position.borrow_usd is None:
            label = "❔ Price unavailable"
            borrowed = ltv_text = factor_text = "n/a"
        else:
            borrow_usd = position.borrow_usd or 0.0
            factor = health_factor(position.collateral_usd, borrow_usd)
            tier = classify_health(factor, self._thresholds.danger, self._thresholds.at_risk)
            label = _TIER_LABELS[tier.value]
            borrowed = format_usd(borrow_usd)
            ltv_text = f"{ltv_ratio(borrow_usd, position.collateral_usd):.2f}%"
            factor_text = format_health_factor(factor)
        capacity = position_max_borrowable(position)
        collateral = ", ".join(
            f"{format_abbreviated(format_units(c.amount, c.token.decimals))} {c.token.symbol}"
            for c in position.collaterals
        ) or "none"
        return (
            f"{pool.collateral_token.symbol}/{pool.borrow_token.symbol} · {label}\n"
            f"  Collateral: {collateral} ({format_usd(position.collateral_usd)})\n"
            f"  Borrowed: {borrowed} · LTV {ltv_text} · HF {factor_text}\n"
            f"  Max borrowable: {format_abbreviated(format_units(capacity, pool.borrow_token.decimals))}"
            f" {pool.borrow_token.symbol}"
        )

    def render_portfolio(self, summary: PortfolioSummary) -> str:
        lines = [
            f"📊 Portfolio {shorten_address(summary.account)}",
            "",
            f"Deposits:   {format_usd(summary.total_deposit_usd)} · net APY {summary.net_supply_apy:.2f}%",
            f"Borrows:    {format_usd(summary.total_borrow_usd)} · net rate {summary.net_borrow_rate:.2f}%",
            f"Collateral: {format_usd(summary.total_collateral_usd)}",
        ]
        for position in summary.deposits:
            pool = position.pool
            lines.append(
                f"  earn {pool.borrow_token.symbol}: "
                f"{format_abbreviated(format_units(position.deposit_amount, pool.borrow_token.decimals))}"
                f" ({format_usd(position.deposit_usd or 0.0)}) @ {pool.supply_apy:.2f}%"
            )
        borrowing = [p for p in summary.positions if p.has_position]
        if borrowing:
            lines.append("")
            lines += [self.render_position(p) for p in borrowing]
        if summary.partial:
            lines += ["", f"⚠️ Partial data: {len(summary.failed_pools)} pool(s) still loading"]
        lines += ["", f"{self._now_str()} UTC"]
        return "\n".join(lines)

    @staticmethod
    def render_activity(
        events: Iterable[ActivityEvent], pools: Mapping[str, PoolSnapshot | None] | None = None
    ) -> str:
        """One line per event. Amounts are scaled when the event's pool snapshot is known."""
        by_address = {k.lower(): v for k, v in (pools or {}).items() if v is not None}
        lines = []
        for event in events:
            when = datetime.fromtimestamp(event.timestamp, timezone.utc).strftime("%Y-%m-%d %H:%M")
            pool = by_address.get(event.pool.lower())
            if pool is None:
                amount = str(event.amount)
            else:
                token = pool.collateral_token if event.action in _COLLATERAL_EVENTS else pool.borrow_token
                amount = f"{format_abbreviated(format_units(event.amount, token.decimals))} {token.symbol}"
            lines.append(
                f"{when}  {event.action.value:<20} {amount:>16}  "
                f"{shorten_address(event.pool)}  {shorten_address(event.tx_hash)}"
            )
        return "\n".join(lines) if lines else "No activity found."

    @staticmethod
    def render_history(
        deposits: list[HistoryPoint], borrows: list[HistoryPoint], collateral: list[HistoryPoint]
    ) -> str:
        def rows(title: str, points: list[HistoryPoint], value, rate) -> list[str]:
            out = [f"━━ {title} ━━"]
            for point in points:
                when = datetime.fromtimestamp(point.timestamp, timezone.utc).strftime("%Y-%m-%d %H:%M")
                suffix = f"  {rate(point):.2f}%" if rate else ""
                out.append(f"{when}  {format_usd(value(point)):>14}{suffix}")
            if len(out) == 1:
                out.append("no data")
            return out

        lines = rows("Deposits", deposits, lambda p: p.total_deposits, lambda p: p.supply_apy)
        lines += [""] + rows("Borrows", borrows, lambda p: p.total_borrows, lambda p: p.borrow_rate)
        lines += [""] + rows("Collateral", collateral, lambda p: p.total_collateral, None)
        return "\n".join(lines)

    @staticmethod
    def render_pool_history(address: str, points: list[HistoryPoint]) -> str:
        lines = [f"📈 Pool history {shorten_address(address)}", ""]
        for point in points:
            when = datetime.fromtimestamp(point.timestamp, timezone.utc).strftime("%Y-%m-%d %H:%M")
            lines.append(
                f"{when}  supply {format_abbreviated(point.total_deposits):>10}"
                f"  borrow {format_abbreviated(point.total_borrows):>10}"
                f"  collateral {format_abbreviated(point.total_collateral):>10}"
                f"  APY {point.supply_apy:.2f}% / {point.borrow_rate:.2f}%"
            )
        if len(lines) == 2:
            lines.append("no data")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def run_continuous(self, interval_seconds: float | None = None) -> None:
        """Refresh pools (and the portfolio when connected) forever."""
        interval = interval_seconds or self._config.dashboard.poll_interval_seconds
        logger.info("Starting dashboard refresh loop (every %.0f seconds)", interval)

        while True:
            try:
                if self._context.is_connected:
                    print(self.render_portfolio(await self.refresh_portfolio()))
                else:
                    print(self.render_pools(await self.refresh_pools()))
            except Exception as e:
                logger.error("Error in refresh loop: %s", e)
            await asyncio.sleep(interval)
