"""
User Schemas.
"""

from pydantic import BaseModel, Field, EmailStr, computed_field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from vale_backend.app.domain.money import format_minor_units
from vale_backend.app.models.enums import UserRole, UserStatus
from vale_backend.app.schemas.money import PercentInput


class UserCreate(BaseModel):
    """Schema for registering a user."""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    role: UserRole = UserRole.CLIENT
    referral_code: Optional[str] = Field(None, max_length=32, description="Code of the referring user")


class UserResponse(BaseModel):
    """Schema for user response."""
    id: int
    name: str
    email: str
    role: UserRole
    status: UserStatus
    referral_code: str
    referred_by_id: Optional[int] = None
    approved: bool = True
    platform_fee_rate: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
    page: int
    page_size: int


class ReferredUserItem(BaseModel):
    id: int
    name: str
    role: UserRole
    created_at: datetime

    class Config:
        from_attributes = True


class ReferralSummaryResponse(BaseModel):
    """A user's code, the users they referred and commission earned."""
    user_id: int
    referral_code: str
    referred_by_id: Optional[int] = None
    total_commission: int
    referred_users: List[ReferredUserItem]

    @computed_field
    @property
    def total_commission_display(self) -> str:
        return format_minor_units(self.total_commission)

    class Config:
        from_attributes = True


class UserStatusUpdate(BaseModel):
    """Schema for an admin status change."""
    status: UserStatus


class MerchantApprovalUpdate(BaseModel):
    approved: bool


class MerchantFeeRateUpdate(BaseModel):
    """Own platform fee for one merchant; null falls back to the active rate."""
    platform_fee_rate: Optional[PercentInput] = None
