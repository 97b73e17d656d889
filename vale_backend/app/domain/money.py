"""
Money arithmetic in integer minor units.

Amounts are ints of cents everywhere inside the ledger. Percentages are applied
with Decimal and rounded half-up to the cent at the moment they are applied.
Conversion from loosely typed request values happens only at the API edge via
``to_minor_units``; formatting to two decimals only at presentation.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from vale_backend.app.core.exceptions import InvalidAmountError

MINOR_UNITS_PER_MAJOR = 100
BPS_PER_PERCENT = 100

# Largest amount accepted from outside (cents). Keeps sums of many postings
# inside a signed 64-bit BIGINT column.
MAX_AMOUNT_MINOR = 10 ** 15

AmountInput = Union[str, int, float, Decimal]
RateInput = Union[str, int, Decimal]

_CENT = Decimal("0.01")
_ONE = Decimal("1")
_MAX_AMOUNT = Decimal(MAX_AMOUNT_MINOR) / MINOR_UNITS_PER_MAJOR


def _to_decimal(value) -> Decimal:
    if isinstance(value, bool):
        raise InvalidAmountError("Amount must be a number", details={"value": value})
    if isinstance(value, float):
        # repr() gives the shortest string that round-trips, e.g. 0.1 -> "0.1"
        value = repr(value)
    try:
        result = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError("Amount is not a valid number", details={"value": str(value)})
    if not result.is_finite():
        raise InvalidAmountError("Amount must be finite", details={"value": str(value)})
    return result


def to_minor_units(value: AmountInput) -> int:
    """
    Convert an external amount ("12.34", 12.34, 12, Decimal) to cents.

    Raises:
        InvalidAmountError: malformed, non-finite, above MAX_AMOUNT_MINOR
            or more than two decimals
    """
    amount = _to_decimal(value)
    if abs(amount) > _MAX_AMOUNT:
        raise InvalidAmountError(
            f"Amount exceeds the maximum of {format_minor_units(MAX_AMOUNT_MINOR)}",
            details={"value": str(value), "max_amount": MAX_AMOUNT_MINOR},
        )
    try:
        rounded = amount.quantize(_CENT)
    except InvalidOperation:
        raise InvalidAmountError("Amount is not a valid number", details={"value": str(value)})
    if amount != rounded:
        raise InvalidAmountError(
            "Amount has more than two decimal places", details={"value": str(value)}
        )
    return int((amount * MINOR_UNITS_PER_MAJOR).to_integral_value())


def format_minor_units(amount: int) -> str:
    """Render cents as a two-decimal string: 1234 -> "12.34", -5 -> "-0.05"."""
    sign = "-" if amount < 0 else ""
    whole, cents = divmod(abs(amount), MINOR_UNITS_PER_MAJOR)
    return f"{sign}{whole}.{cents:02d}"


def apply_rate(amount_minor: int, rate_percent: RateInput) -> int:
    """
    Apply a percentage to an amount in cents, rounding half-up to the cent.

    apply_rate(10000, "2") == 200; apply_rate(125, "2") == 3 (2.5 rounds up).
    """
    rate = _to_decimal(rate_percent)
    raw = Decimal(amount_minor) * rate / Decimal(100)
    return int(raw.quantize(_ONE, rounding=ROUND_HALF_UP))


def apply_bps(amount_minor: int, rate_bps: int) -> int:
    """Same as ``apply_rate`` with the rate given in basis points."""
    return apply_rate(amount_minor, bps_to_percent(rate_bps))


def percent_to_bps(rate_percent: RateInput) -> int:
    """2.5 percent -> 250 bps. Rates finer than 0.01% are rejected."""
    rate = _to_decimal(rate_percent)
    if rate < 0 or rate > 100:
        raise InvalidAmountError("Rate must be between 0 and 100 percent", details={"rate": str(rate)})
    bps = rate * BPS_PER_PERCENT
    if bps != bps.to_integral_value():
        raise InvalidAmountError("Rate has more than two decimal places", details={"rate": str(rate)})
    return int(bps)


def bps_to_percent(rate_bps: int) -> Decimal:
    return (Decimal(rate_bps) / BPS_PER_PERCENT).quantize(_CENT)
