"""
Withdrawal request database model.
"""

from sqlalchemy import Column, Integer, BigInteger, String, ForeignKey, DateTime, Enum, JSON
from vale_backend.app.db.session import Base, utcnow
from vale_backend.app.models.billing_enums import WithdrawalStatus, WithdrawalMethod


class WithdrawalRequest(Base):
    """
    Withdrawal Request model.

    While PENDING the amount is reserved against the user's available balance
    without any ledger entry. COMPLETED posts the withdrawal debit; REJECTED
    simply releases the reservation.
    """
    __tablename__ = "withdrawal_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(BigInteger, nullable=False)  # minor units
    payment_method = Column(Enum(WithdrawalMethod), nullable=False)
    payment_details = Column(JSON, nullable=False, default=dict)

    status = Column(Enum(WithdrawalStatus), default=WithdrawalStatus.PENDING, nullable=False, index=True)
    admin_notes = Column(String(255), nullable=True)
    resolved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<WithdrawalRequest(id={self.id}, status='{self.status.value}', amount={self.amount})>"
