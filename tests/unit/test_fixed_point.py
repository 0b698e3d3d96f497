"""Unit tests for fixed-point conversions and display helpers."""
from __future__ import annotations

import pytest

from isolend.errors import InvalidAmount
from isolend.fixed_point import (
    assets_to_shares,
    format_abbreviated,
    format_units,
    format_usd,
    shares_to_assets,
    shorten_address,
    to_display,
    to_raw,
    to_usd,
)
from isolend.models import Price, TokenAmount


class TestToRaw:
    @pytest.mark.parametrize(
        "display, decimals, expected",
        [
            ("1.5", 6, 1_500_000),
            ("1.5", 8, 150_000_000),
            ("1.5", 18, 1_500_000_000_000_000_000),
            ("0", 6, 0),
            (".25", 6, 250_000),
            ("100", 0, 100),
        ],
    )
    def test_parses_decimal_strings(self, display: str, decimals: int, expected: int) -> None:
        assert to_raw(display, decimals) == expected

    def test_truncates_excess_precision(self) -> None:
        assert to_raw("1.1234567", 6) == 1_123_456

    def test_exponent_notation(self) -> None:
        assert to_raw("1e3", 6) == 1_000_000_000

    def test_surrounding_whitespace_ignored(self) -> None:
        assert to_raw("  2.5 ", 6) == 2_500_000

    @pytest.mark.parametrize("bad", ["", "abc", "-1", "1.2.3", "1,000", "0x10", "NaN"])
    def test_rejects_non_numerals(self, bad: str) -> None:
        with pytest.raises(InvalidAmount):
            to_raw(bad, 6)

    def test_invalid_amount_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            to_raw("nope", 6)

    def test_round_trip_is_exact(self) -> None:
        for decimals in (6, 8, 18):
            raw = to_raw("1234.5", decimals)
            assert to_display(TokenAmount(raw, decimals)) == 1234.5

    @pytest.mark.parametrize(
        "raw, decimals",
        [
            (123_456_789, 6),
            (123_456_789, 8),
            (123_456_789, 18),
            (999_999, 6),
            (1, 18),
            (10**24 + 1, 18),
        ],
    )
    def test_display_then_raw_within_one_unit(self, raw: int, decimals: int) -> None:
        display = to_display(TokenAmount(raw, decimals))
        assert abs(to_raw(str(display), decimals) - raw) <= 1


class TestFormatUnits:
    def test_scales_down(self) -> None:
        assert format_units(22_500 * 10**6, 6) == 22_500.0

    def test_zero(self) -> None:
        assert format_units(0, 18) == 0.0

    def test_large_magnitude(self) -> None:
        assert format_units(123_456_789 * 10**18, 18) == 123_456_789.0


class TestShareConversion:
    def test_shares_to_assets_proportional(self) -> None:
        assert shares_to_assets(100, 1_000, 2_000) == 200

    def test_shares_to_assets_truncates(self) -> None:
        assert shares_to_assets(1, 3, 10) == 3

    def test_shares_to_assets_empty_pool(self) -> None:
        assert shares_to_assets(100, 0, 0) == 0

    def test_assets_to_shares(self) -> None:
        assert assets_to_shares(200, 1_000, 2_000) == 100

    def test_assets_to_shares_empty_pool(self) -> None:
        assert assets_to_shares(200, 0, 0) == 0
        assert assets_to_shares(200, 1_000, 0) == 0


class TestToUsd:
    def test_token_and_price_decimals_differ(self) -> None:
        amount = TokenAmount(10 * 10**18, 18)
        price = Price(3000 * 10**8, 8)
        assert to_usd(amount, price) == pytest.approx(30_000.0)


class TestFormatting:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (2_500_000, "2.50M"),
            (1_234.5, "1.23K"),
            (12.5, "12.50"),
            (0.0001234, "0.000123"),
            (0, "0.00"),
        ],
    )
    def test_format_abbreviated(self, value: float, expected: str) -> None:
        assert format_abbreviated(value) == expected

    def test_format_usd(self) -> None:
        assert format_usd(1234.567) == "$1,234.57"

    def test_shorten_address(self) -> None:
        assert shorten_address("0x1234567890abcdef1234567890abcdef12345678") == "0x1234...5678"

    def test_shorten_leaves_short_strings(self) -> None:
        assert shorten_address("0xabc") == "0xabc"


class TestToRawPrecision:
    def test_keeps_every_digit_of_long_18_decimal_amounts(self) -> None:
        assert to_raw("12345678901.123456789012345678", 18) == 12345678901123456789012345678

    def test_out_of_uint256_range(self) -> None:
        with pytest.raises(InvalidAmount):
            to_raw("1e80", 0)
