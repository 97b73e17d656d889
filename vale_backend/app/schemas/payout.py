"""
Transfer and Withdrawal Schemas.
"""

from pydantic import BaseModel, Field, computed_field
from datetime import datetime
from typing import Optional, List, Dict, Any
from vale_backend.app.domain.money import format_minor_units
from vale_backend.app.models.billing_enums import TransferStatus, WithdrawalStatus, WithdrawalMethod
from vale_backend.app.schemas.money import MoneyInput


class TransferCreate(BaseModel):
    """Schema for a peer-to-peer transfer."""
    from_user_id: int
    to_user_id: int
    amount: MoneyInput
    description: Optional[str] = Field(None, max_length=255)


class TransferResponse(BaseModel):
    id: int
    from_user_id: int
    to_user_id: int
    amount: int
    description: Optional[str] = None
    status: TransferStatus
    notes: Optional[str] = None
    resolved_by_id: Optional[int] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None

    @computed_field
    @property
    def amount_display(self) -> str:
        return format_minor_units(self.amount)

    class Config:
        from_attributes = True


class TransferListResponse(BaseModel):
    transfers: List[TransferResponse]
    total: int
    page: int
    page_size: int


class TransferResolve(BaseModel):
    """Admin decision on a pending transfer."""
    status: TransferStatus
    notes: Optional[str] = Field(None, max_length=255)


class WithdrawalCreate(BaseModel):
    """Schema for requesting a withdrawal."""
    user_id: int
    amount: MoneyInput
    payment_method: WithdrawalMethod
    payment_details: Dict[str, Any] = Field(default_factory=dict, description="Bank account or Zelle details")


class WithdrawalResponse(BaseModel):
    id: int
    user_id: int
    amount: int
    payment_method: WithdrawalMethod
    payment_details: Dict[str, Any]
    status: WithdrawalStatus
    admin_notes: Optional[str] = None
    resolved_by_id: Optional[int] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None

    @computed_field
    @property
    def amount_display(self) -> str:
        return format_minor_units(self.amount)

    class Config:
        from_attributes = True


class WithdrawalListResponse(BaseModel):
    withdrawals: List[WithdrawalResponse]
    total: int
    page: int
    page_size: int


class WithdrawalResolve(BaseModel):
    """Admin decision on a pending withdrawal."""
    status: WithdrawalStatus
    notes: Optional[str] = Field(None, max_length=255)
