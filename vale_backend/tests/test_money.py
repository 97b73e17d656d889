"""
Money arithmetic tests.
"""

from decimal import Decimal

import pytest

from vale_backend.app.core.exceptions import InvalidAmountError
from vale_backend.app.domain.money import (
    MAX_AMOUNT_MINOR,
    apply_bps,
    apply_rate,
    bps_to_percent,
    format_minor_units,
    percent_to_bps,
    to_minor_units,
)


@pytest.mark.parametrize("value, expected", [
    ("100.00", 10000),
    ("12.3", 1230),
    (12.34, 1234),
    (0.1, 10),
    (7, 700),
    (Decimal("0.01"), 1),
    ("  5.50 ", 550),
])
def test_to_minor_units_accepts_strings_and_numbers(value, expected):
    assert to_minor_units(value) == expected


@pytest.mark.parametrize("value", ["12.345", 0.001, "abc", "", "NaN", "Infinity", float("inf"), True, None])
def test_to_minor_units_rejects_bad_input(value):
    with pytest.raises(InvalidAmountError):
        to_minor_units(value)


@pytest.mark.parametrize("value", ["1e30", "-1e30", "100000000000000000000", 10 ** 20, "1e999999", 1e300])
def test_to_minor_units_rejects_oversized_amounts(value):
    with pytest.raises(InvalidAmountError):
        to_minor_units(value)


def test_to_minor_units_accepts_the_maximum():
    assert to_minor_units(format_minor_units(MAX_AMOUNT_MINOR)) == MAX_AMOUNT_MINOR
    with pytest.raises(InvalidAmountError):
        to_minor_units(format_minor_units(MAX_AMOUNT_MINOR + 1))


def test_apply_rate_rounds_half_up():
    assert apply_rate(10000, "2") == 200
    assert apply_rate(10000, 1) == 100
    # 1.25 * 2% = 0.025 -> 0.03
    assert apply_rate(125, "2") == 3
    # 1.24 * 2% = 0.0248 -> 0.02
    assert apply_rate(124, "2") == 2
    assert apply_rate(20, "2") == 0


def test_apply_rate_is_deterministic_for_float_rates():
    assert apply_rate(333, 1.5) == apply_rate(333, "1.5") == 5


def test_bps_conversions():
    assert percent_to_bps("2.5") == 250
    assert percent_to_bps(100) == 10000
    assert bps_to_percent(250) == Decimal("2.50")
    assert apply_bps(10000, 250) == 250


@pytest.mark.parametrize("rate", ["-1", "100.01", "1.005"])
def test_percent_to_bps_rejects_out_of_range_or_too_precise(rate):
    with pytest.raises(InvalidAmountError):
        percent_to_bps(rate)


def test_format_minor_units():
    assert format_minor_units(1234) == "12.34"
    assert format_minor_units(5) == "0.05"
    assert format_minor_units(-205) == "-2.05"
    assert format_minor_units(0) == "0.00"
