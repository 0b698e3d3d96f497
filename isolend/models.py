"""Data models. All frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class TokenAmount:
    """Raw integer token quantity together with its decimal count."""

    magnitude: int
    decimals: int

    def __add__(self, other: TokenAmount) -> TokenAmount:
        if not isinstance(other, TokenAmount):
            return NotImplemented
        if other.decimals != self.decimals:
            raise ValueError(
                f"Cannot add amounts with {self.decimals} and {other.decimals} decimals"
            )
        return TokenAmount(self.magnitude + other.magnitude, self.decimals)

    def __sub__(self, other: TokenAmount) -> TokenAmount:
        if not isinstance(other, TokenAmount):
            return NotImplemented
        if other.decimals != self.decimals:
            raise ValueError(
                f"Cannot subtract amounts with {self.decimals} and {other.decimals} decimals"
            )
        return TokenAmount(self.magnitude - other.magnitude, self.decimals)


@dataclass(frozen=True)
class Price:
    """Oracle price. A zero magnitude means the price is unavailable."""

    magnitude: int
    decimals: int

    @property
    def is_available(self) -> bool:
        return self.magnitude > 0

    @classmethod
    def unavailable(cls) -> Price:
        return cls(0, 8)


@dataclass(frozen=True)
class TokenInfo:
    address: str
    symbol: str
    name: str
    decimals: int


@dataclass(frozen=True)
class PoolSnapshot:
    """Economic state of one lending pool, derived fresh from chain reads."""

    pool_address: str
    router_address: str
    factory_address: str
    interest_rate_model: str
    oracle_address: str
    shares_token: str
    borrow_token: TokenInfo
    collateral_token: TokenInfo
    total_supply_assets: int
    total_borrow_assets: int
    total_borrow_shares: int
    total_supply_shares: int
    ltv: int
    borrow_rate: int
    reserve_factor: int
    borrow_apy: float
    supply_apy: float
    utilization: float
    borrow_price: Price
    collateral_price: Price

    @property
    def liquidity(self) -> int:
        return self.total_supply_assets - self.total_borrow_assets

    @property
    def ltv_percent(self) -> float:
        return self.ltv / 1e16

    @property
    def utilization_percent(self) -> float:
        if self.total_supply_assets == 0:
            return 0.0
        return (self.total_borrow_assets * 10000 // self.total_supply_assets) / 100


@dataclass(frozen=True)
class CollateralItem:
    """Non-zero token balance held by a position contract."""

    pool_address: str
    token: TokenInfo
    amount: int
    price: Price
    usd_value: float | None


@dataclass(frozen=True)
class Position:
    """An account's standing in one pool. Asset amounts are derived from shares."""

    pool: PoolSnapshot
    account: str
    deposit_shares: int
    deposit_amount: int
    borrow_shares: int
    borrow_amount: int
    position_address: str = ZERO_ADDRESS
    collaterals: tuple[CollateralItem, ...] = ()
    deposit_usd: float | None = None
    borrow_usd: float | None = None

    @property
    def has_position(self) -> bool:
        return self.position_address.lower() != ZERO_ADDRESS

    @property
    def collateral_usd(self) -> float:
        return sum(c.usd_value for c in self.collaterals if c.usd_value is not None)

    def collateral_balance(self, token_address: str) -> int:
        for item in self.collaterals:
            if item.token.address.lower() == token_address.lower():
                return item.amount
        return 0


@dataclass(frozen=True)
class PortfolioSummary:
    """Cross-pool totals for one account."""

    account: str
    positions: tuple[Position, ...] = ()
    total_deposit_usd: float = 0.0
    total_borrow_usd: float = 0.0
    total_collateral_usd: float = 0.0
    net_supply_apy: float = 0.0
    net_borrow_rate: float = 0.0
    partial: bool = False
    failed_pools: tuple[str, ...] = ()

    @property
    def deposits(self) -> tuple[Position, ...]:
        return tuple(p for p in self.positions if p.deposit_amount > 0)

    @property
    def loans(self) -> tuple[Position, ...]:
        return tuple(p for p in self.positions if p.borrow_amount > 0)

    @property
    def collaterals(self) -> tuple[CollateralItem, ...]:
        return tuple(c for p in self.positions for c in p.collaterals)


class ActivityType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    SUPPLY_COLLATERAL = "supply-collateral"
    WITHDRAW_COLLATERAL = "withdraw-collateral"


@dataclass(frozen=True)
class ActivityEvent:
    """One indexed protocol transaction."""

    id: str
    action: ActivityType
    amount: int
    timestamp: int
    tx_hash: str
    user: str
    pool: str


@dataclass(frozen=True)
class HistoryPoint:
    """One point of a pool or portfolio time series (amounts in display units)."""

    timestamp: int
    total_deposits: float = 0.0
    total_borrows: float = 0.0
    total_collateral: float = 0.0
    supply_apy: float = 0.0
    borrow_rate: float = 0.0


@dataclass(frozen=True)
class ContractCall:
    """A contract write, ready to be signed and submitted."""

    address: str
    abi: tuple[dict, ...] | list[dict]
    function: str
    args: tuple = ()
    value: int = 0


@dataclass(frozen=True)
class TxReceipt:
    tx_hash: str
    status: int
    block_number: int = 0
    logs: tuple = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass(frozen=True)
class IndexedSnapshot:
    """Historical pool state recorded by the indexer. Rates are 1e18-scaled."""

    timestamp: int
    lending_pool: str
    router: str
    total_supply_assets: int
    total_borrow_assets: int
    total_collateral: int
    supply_apr: int
    borrow_rate: int
    block_number: int = 0
