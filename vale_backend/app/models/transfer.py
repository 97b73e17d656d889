"""
Transfer database model.

Peer-to-peer balance movement between two users.
"""

from sqlalchemy import Column, Integer, BigInteger, String, ForeignKey, DateTime, Enum
from vale_backend.app.db.session import Base, utcnow
from vale_backend.app.models.billing_enums import TransferStatus


class Transfer(Base):
    """
    Transfer model.

    PENDING -> COMPLETED | CANCELLED. The transfer_out/transfer_in ledger
    entries are posted only when the transfer completes.
    """
    __tablename__ = "transfers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    to_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(BigInteger, nullable=False)  # minor units
    description = Column(String(255), nullable=True)

    status = Column(Enum(TransferStatus), default=TransferStatus.PENDING, nullable=False, index=True)
    notes = Column(String(255), nullable=True)
    resolved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Transfer(id={self.id}, status='{self.status.value}', amount={self.amount})>"
