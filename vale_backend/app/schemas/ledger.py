"""
Ledger and Balance Schemas.
"""

from pydantic import BaseModel, Field, computed_field
from datetime import datetime
from typing import Optional, List
from vale_backend.app.domain.money import format_minor_units
from vale_backend.app.models.enums import LedgerEntryKind, LedgerEntryStatus


class BalanceResponse(BaseModel):
    """Account Balance: posted balance, reserved funds and what is spendable."""
    user_id: int
    cashback_balance: int
    pending_balance: int
    available_balance: int

    @computed_field
    @property
    def cashback_balance_display(self) -> str:
        return format_minor_units(self.cashback_balance)

    @computed_field
    @property
    def pending_balance_display(self) -> str:
        return format_minor_units(self.pending_balance)

    @computed_field
    @property
    def available_balance_display(self) -> str:
        return format_minor_units(self.available_balance)

    class Config:
        from_attributes = True


class LedgerEntryResponse(BaseModel):
    """Schema for one ledger entry."""
    id: int
    user_id: int
    kind: LedgerEntryKind
    amount: int
    status: LedgerEntryStatus
    related_transaction_id: Optional[int] = None
    related_transfer_id: Optional[int] = None
    related_withdrawal_id: Optional[int] = None
    reverses_entry_id: Optional[int] = None
    reversed_by_id: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime

    @computed_field
    @property
    def amount_display(self) -> str:
        return format_minor_units(self.amount)

    class Config:
        from_attributes = True


class LedgerPage(BaseModel):
    entries: List[LedgerEntryResponse]
    total: int
    page: int
    page_size: int


class ReverseEntryRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)
