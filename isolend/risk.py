"""Pure risk calculations: health factor and borrow capacity. No I/O."""
from __future__ import annotations

import math
from enum import Enum

from .fixed_point import to_usd
from .models import Position, Price, TokenAmount

WAD = 10**18

DANGER_THRESHOLD = 1.1
AT_RISK_THRESHOLD = 1.5


class HealthTier(str, Enum):
    SAFE = "safe"
    HEALTHY = "healthy"
    AT_RISK = "at-risk"
    DANGER = "danger"


def health_factor(collateral_usd: float, borrow_usd: float) -> float:
    """Collateral value over borrowed value.

    No debt is unconditionally safe (``inf``); debt with no collateral is 0.
    """
    if borrow_usd == 0:
        return math.inf
    if collateral_usd == 0:
        return 0.0
    return collateral_usd / borrow_usd


def classify_health(
    factor: float,
    danger: float = DANGER_THRESHOLD,
    at_risk: float = AT_RISK_THRESHOLD,
) -> HealthTier:
    if math.isinf(factor):
        return HealthTier.SAFE
    if factor < danger:
        return HealthTier.DANGER
    if factor < at_risk:
        return HealthTier.AT_RISK
    return HealthTier.HEALTHY


def format_health_factor(factor: float) -> str:
    return "∞" if math.isinf(factor) else f"{factor:.2f}"


def max_borrowable(
    collateral_amount: int,
    collateral_price: Price,
    ltv: int,
    borrow_price: Price,
    borrow_decimals: int,
    collateral_decimals: int,
    existing_borrow: int = 0,
) -> int:
    """Remaining borrow capacity in raw borrow-token units.

    collateral value × LTV / 1e18, converted into borrow-token units at the
    borrow price, minus what is already borrowed. Every multiplication is
    done before the single integer division; the result never goes below 0.
    """
    if (
        collateral_amount <= 0
        or ltv <= 0
        or not collateral_price.is_available
        or not borrow_price.is_available
    ):
        return 0

    numerator = (
        collateral_amount
        * collateral_price.magnitude
        * ltv
        * 10**borrow_decimals
        * 10**borrow_price.decimals
    )
    denominator = (
        WAD
        * borrow_price.magnitude
        * 10**collateral_decimals
        * 10**collateral_price.decimals
    )
    capacity = numerator // denominator
    return capacity - existing_borrow if capacity > existing_borrow else 0


def projected_health_factor(
    current_borrow_usd: float,
    additional_borrow: TokenAmount,
    borrow_price: Price,
    collateral_usd: float,
) -> float:
    """Health factor after borrowing ``additional_borrow`` more."""
    added_usd = to_usd(additional_borrow, borrow_price) if borrow_price.is_available else 0.0
    return health_factor(collateral_usd, current_borrow_usd + added_usd)


def ltv_ratio(borrow_usd: float, collateral_usd: float) -> float:
    """Current loan-to-value as a percentage of collateral value."""
    if collateral_usd <= 0:
        return 0.0
    return borrow_usd / collateral_usd * 100


def position_max_borrowable(position: Position) -> int:
    """Remaining borrow capacity of a position across every collateral token it holds."""
    pool = position.pool
    capacity = sum(
        max_borrowable(
            item.amount,
            item.price,
            pool.ltv,
            pool.borrow_price,
            pool.borrow_token.decimals,
            item.token.decimals,
        )
        for item in position.collaterals
    )
    return capacity - position.borrow_amount if capacity > position.borrow_amount else 0
