"""
Commission Setting database model.

Versioned, admin-configurable rates.
"""

from sqlalchemy import Column, Integer, BigInteger, ForeignKey, DateTime
from vale_backend.app.db.session import Base, utcnow
from vale_backend.app.domain.money import bps_to_percent


class CommissionSetting(Base):
    """
    Commission Setting model.

    Each row is one immutable version; the highest id is in effect.
    Sales reference the version they were priced with.
    """
    __tablename__ = "commission_settings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    cashback_rate_bps = Column(Integer, nullable=False)
    referral_commission_rate_bps = Column(Integer, nullable=False)
    platform_fee_rate_bps = Column(Integer, nullable=False)
    min_withdrawal_amount = Column(BigInteger, nullable=False)  # minor units

    # Audit (NULL for the default version seeded by the system)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def cashback_rate(self):
        return bps_to_percent(self.cashback_rate_bps)

    @property
    def referral_commission_rate(self):
        return bps_to_percent(self.referral_commission_rate_bps)

    @property
    def platform_fee_rate(self):
        return bps_to_percent(self.platform_fee_rate_bps)

    def __repr__(self):
        return f"<CommissionSetting(id={self.id}, cashback_bps={self.cashback_rate_bps})>"
