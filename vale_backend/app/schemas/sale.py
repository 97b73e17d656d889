"""
Sale (Transaction) Schemas.
"""

from pydantic import BaseModel, Field, computed_field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from vale_backend.app.domain.money import format_minor_units
from vale_backend.app.models.billing_enums import TransactionStatus, PaymentMethod
from vale_backend.app.schemas.money import MoneyInput


class SaleCreate(BaseModel):
    """Schema for a merchant recording a sale."""
    merchant_id: int
    client_id: int
    gross_amount: MoneyInput = Field(..., description="Sale amount, e.g. \"100.00\"")
    payment_method: PaymentMethod
    description: Optional[str] = Field(None, max_length=255)


class SaleAction(BaseModel):
    """Body for complete/cancel/refund."""
    actor_id: Optional[int] = None
    reason: Optional[str] = Field(None, max_length=255)


class SaleResponse(BaseModel):
    """Schema for displaying a sale."""
    id: int
    merchant_id: int
    client_id: int
    gross_amount: int
    payment_method: PaymentMethod
    description: Optional[str] = None
    settings_version_id: int
    cashback_rate: Decimal
    referral_commission_rate: Decimal
    platform_fee_rate: Decimal
    cashback_amount: int
    platform_fee_amount: int
    status: TransactionStatus
    status_reason: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    @computed_field
    @property
    def gross_amount_display(self) -> str:
        return format_minor_units(self.gross_amount)

    @computed_field
    @property
    def cashback_amount_display(self) -> str:
        return format_minor_units(self.cashback_amount)

    class Config:
        from_attributes = True


class SaleListResponse(BaseModel):
    transactions: List[SaleResponse]
    total: int
    page: int
    page_size: int
