"""
Analytics Schemas for the admin dashboard.
"""

from pydantic import BaseModel, computed_field
from typing import Dict
from vale_backend.app.domain.money import format_minor_units


class AdminDashboardStats(BaseModel):
    """System-wide stats for Admins (amounts in minor units)."""
    users_by_role: Dict[str, int]
    transactions_by_status: Dict[str, int]
    completed_sales_volume: int
    total_cashback_credited: int
    total_referral_commission: int
    pending_withdrawals_count: int
    pending_withdrawals_amount: int
    pending_transfers_count: int

    @computed_field
    @property
    def completed_sales_volume_display(self) -> str:
        return format_minor_units(self.completed_sales_volume)

    @computed_field
    @property
    def pending_withdrawals_amount_display(self) -> str:
        return format_minor_units(self.pending_withdrawals_amount)
