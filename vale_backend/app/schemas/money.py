"""
Money fields shared by request and response schemas.

Requests accept amounts as JSON strings or numbers ("12.34", 12.34, 12) and
convert them to integer minor units here, at the edge. Responses carry the
integer plus a two-decimal display string.
"""

from decimal import Decimal
from typing import Annotated

from pydantic import BeforeValidator, Field

from vale_backend.app.core.exceptions import InvalidAmountError
from vale_backend.app.domain.money import to_minor_units


def _parse_amount(value):
    try:
        return to_minor_units(value)
    except InvalidAmountError as exc:
        raise ValueError(exc.message)


MoneyInput = Annotated[int, BeforeValidator(_parse_amount)]

PercentInput = Annotated[Decimal, Field(ge=0, le=100, max_digits=5, decimal_places=2)]
