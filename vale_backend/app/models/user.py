"""
User database model.

Clients, merchants and admins share one table. The referral relationship is a
single parent pointer (referred_by_id) written once at registration.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, Boolean
from vale_backend.app.db.session import Base, utcnow
from vale_backend.app.domain.money import bps_to_percent
from vale_backend.app.models.enums import UserRole, UserStatus


class User(Base):
    """
    User model.

    referral_code is issued at registration and never changes.
    referred_by_id is set at creation only; no API writes it afterwards.
    approved gates merchants: an unapproved merchant cannot record sales.
    platform_fee_rate_bps overrides the active platform fee for one merchant.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)

    role = Column(Enum(UserRole), default=UserRole.CLIENT, nullable=False, index=True)
    status = Column(Enum(UserStatus), default=UserStatus.ACTIVE, nullable=False)

    # Merchant store
    approved = Column(Boolean, default=True, nullable=False)
    platform_fee_rate_bps = Column(Integer, nullable=True)

    # Referral
    referral_code = Column(String(32), unique=True, index=True, nullable=False)
    referred_by_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def platform_fee_rate(self):
        if self.platform_fee_rate_bps is None:
            return None
        return bps_to_percent(self.platform_fee_rate_bps)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"
