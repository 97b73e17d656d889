"""
Commission Rate Schemas.
"""

from pydantic import BaseModel, computed_field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from vale_backend.app.domain.money import format_minor_units
from vale_backend.app.schemas.money import MoneyInput, PercentInput


class RatesUpdate(BaseModel):
    """Schema for publishing a new rate version (percentages)."""
    cashback_rate: PercentInput
    referral_commission_rate: PercentInput
    platform_fee_rate: PercentInput
    min_withdrawal: MoneyInput


class RatesResponse(BaseModel):
    """Schema for a commission setting version."""
    id: int
    cashback_rate: Decimal
    referral_commission_rate: Decimal
    platform_fee_rate: Decimal
    min_withdrawal_amount: int
    created_by_id: Optional[int] = None
    created_at: datetime

    @computed_field
    @property
    def min_withdrawal_display(self) -> str:
        return format_minor_units(self.min_withdrawal_amount)

    class Config:
        from_attributes = True


class RatesHistoryResponse(BaseModel):
    versions: List[RatesResponse]
