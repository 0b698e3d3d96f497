"""Pure fixed-point conversions between raw on-chain integers and display values. No I/O."""
from __future__ import annotations

import re
from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext

from .errors import InvalidAmount
from .models import Price, TokenAmount

# Digits with an optional fraction and an optional exponent; no sign allowed.
_NUMERAL_RE = re.compile(r"^(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

# uint256 has at most 78 decimal digits.
_UINT256_DIGITS = 78
_WORKING_DIGITS = 120


def format_units(value: int, decimals: int) -> float:
    """Scale a raw integer down by ``10**decimals``.

    The division happens in ``Decimal`` so large magnitudes are rounded once,
    at the final float conversion, instead of losing bits in the divide.
    """
    return float(Decimal(value).scaleb(-decimals))


def to_display(amount: TokenAmount | Price) -> float:
    """Convert a TokenAmount (or Price) to its floating display value."""
    return format_units(amount.magnitude, amount.decimals)


def to_raw(display: str, decimals: int) -> int:
    """Parse a user-entered decimal string into a raw integer amount.

    Digits beyond ``decimals`` fractional places are truncated.

    Raises:
        InvalidAmount: ``display`` is not a non-negative decimal numeral.
    """
    text = display.strip() if isinstance(display, str) else ""
    if not _NUMERAL_RE.match(text):
        raise InvalidAmount(f"Not a non-negative decimal amount: {display!r}")
    try:
        value = Decimal(text)
    except InvalidOperation as e:
        raise InvalidAmount(f"Not a non-negative decimal amount: {display!r}") from e
    if value.adjusted() + decimals >= _UINT256_DIGITS:
        raise InvalidAmount(f"Amount out of range: {display!r}")
    with localcontext() as ctx:
        ctx.prec = _WORKING_DIGITS
        scaled = value.scaleb(decimals)
        return int(scaled.quantize(Decimal(1), rounding=ROUND_DOWN))


def shares_to_assets(shares: int, total_shares: int, total_assets: int) -> int:
    """Proportional asset claim of ``shares``, truncated like the pool contract."""
    if total_shares == 0:
        return 0
    return shares * total_assets // total_shares


def assets_to_shares(assets: int, total_shares: int, total_assets: int) -> int:
    """Inverse of :func:`shares_to_assets`, truncated."""
    if total_assets == 0 or total_shares == 0:
        return 0
    return assets * total_shares // total_assets


def to_usd(amount: TokenAmount, price: Price) -> float:
    return to_display(amount) * to_display(price)


def format_abbreviated(value: float) -> str:
    """Format a display value with K/M suffixes.

    Examples:
        2_500_000 → "2.50M"
        1_234.5 → "1.23K"
        0.0001234 → "0.000123"
        0 → "0.00"
    """
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"{value / 1_000:.2f}K"
    if value >= 1:
        return f"{value:.2f}"
    if value > 0:
        return f"{value:.6f}"
    return "0.00"


def format_usd(value: float) -> str:
    return f"${value:,.2f}"


def shorten_address(address: str) -> str:
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"
