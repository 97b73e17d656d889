"""
Ledger Entry database model.

Append-only record of every balance-affecting event.
"""

from sqlalchemy import Column, Integer, BigInteger, ForeignKey, DateTime, Enum, String
from vale_backend.app.db.session import Base, utcnow
from vale_backend.app.models.enums import LedgerEntryKind, LedgerEntryStatus


class LedgerEntry(Base):
    """
    Ledger Entry model.

    Immutable record of a signed amount (minor units) for one user.
    A user's balance is the sum of their posted entries.
    Corrections are new rows of kind REVERSAL pointing at the offset entry;
    reverses_entry_id is unique so an entry can be reversed at most once.
    NO updates or deletions allowed.
    """
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    kind = Column(Enum(LedgerEntryKind), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)  # signed, minor units
    status = Column(Enum(LedgerEntryStatus), default=LedgerEntryStatus.POSTED, nullable=False)

    # Linkage
    related_transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True, index=True)
    related_transfer_id = Column(Integer, ForeignKey("transfers.id"), nullable=True, index=True)
    related_withdrawal_id = Column(Integer, ForeignKey("withdrawal_requests.id"), nullable=True, index=True)
    reverses_entry_id = Column(Integer, ForeignKey("ledger_entries.id"), nullable=True, unique=True)

    description = Column(String(255), nullable=True)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<LedgerEntry(id={self.id}, kind='{self.kind.value}', amount={self.amount})>"
