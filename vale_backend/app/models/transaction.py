"""
Sale transaction database model.

A merchant-recorded sale. Amounts and rates are fixed at creation; only the
status (and its bookkeeping columns) changes afterwards.
"""

from sqlalchemy import Column, Integer, BigInteger, String, ForeignKey, DateTime, Enum
from vale_backend.app.db.session import Base, utcnow
from vale_backend.app.models.billing_enums import TransactionStatus, PaymentMethod
from vale_backend.app.domain.money import bps_to_percent


class Transaction(Base):
    """
    Transaction (Sale) model.

    Rates are captured from the commission setting version active at creation
    so later rate changes never re-price historical sales.
    Follows PENDING -> COMPLETED -> CANCELLED | REFUNDED.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Parties
    merchant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Financials (minor units)
    gross_amount = Column(BigInteger, nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    description = Column(String(255), nullable=True)

    # Captured rates (basis points)
    settings_version_id = Column(Integer, ForeignKey("commission_settings.id"), nullable=False)
    cashback_rate_bps = Column(Integer, nullable=False)
    referral_commission_rate_bps = Column(Integer, nullable=False)
    platform_fee_rate_bps = Column(Integer, nullable=False)

    cashback_amount = Column(BigInteger, nullable=False)
    platform_fee_amount = Column(BigInteger, nullable=False)

    # Status
    status = Column(Enum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False, index=True)
    status_reason = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

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
        return f"<Transaction(id={self.id}, status='{self.status.value}', gross={self.gross_amount})>"
