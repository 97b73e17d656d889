"""
Audit Log Database Model.

Tracks every state-changing ledger operation and admin action.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from vale_backend.app.db.session import Base, utcnow


class AuditLog(Base):
    """
    Audit log model.

    Events logged include:
    - USER_REGISTERED / USER_STATUS_CHANGED
    - SALE_RECORDED / SALE_COMPLETED / SALE_CANCELLED / SALE_REFUNDED
    - TRANSFER_* / WITHDRAWAL_*
    - LEDGER_ENTRY_REVERSED / RATES_UPDATED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)

    # What action was performed, on what
    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id})>"
