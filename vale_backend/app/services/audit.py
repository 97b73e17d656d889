"""
Audit logging service for ledger operations and admin actions.

Audit rows are added to the caller's session and committed together with the
change they describe, so an operation and its audit record share one commit.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, func
from vale_backend.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    USER_REGISTERED = "USER_REGISTERED"
    USER_STATUS_CHANGED = "USER_STATUS_CHANGED"
    MERCHANT_APPROVED = "MERCHANT_APPROVED"
    MERCHANT_REJECTED = "MERCHANT_REJECTED"
    MERCHANT_FEE_RATE_CHANGED = "MERCHANT_FEE_RATE_CHANGED"

    RATES_UPDATED = "RATES_UPDATED"
    RATES_SEEDED = "RATES_SEEDED"

    SALE_RECORDED = "SALE_RECORDED"
    SALE_COMPLETED = "SALE_COMPLETED"
    SALE_CANCELLED = "SALE_CANCELLED"
    SALE_REFUNDED = "SALE_REFUNDED"
    REFERRAL_COMMISSION_POSTED = "REFERRAL_COMMISSION_POSTED"

    LEDGER_ENTRY_REVERSED = "LEDGER_ENTRY_REVERSED"

    TRANSFER_CREATED = "TRANSFER_CREATED"
    TRANSFER_COMPLETED = "TRANSFER_COMPLETED"
    TRANSFER_CANCELLED = "TRANSFER_CANCELLED"

    WITHDRAWAL_REQUESTED = "WITHDRAWAL_REQUESTED"
    WITHDRAWAL_COMPLETED = "WITHDRAWAL_COMPLETED"
    WITHDRAWAL_REJECTED = "WITHDRAWAL_REJECTED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Record an audit event in the current unit of work.

    Args:
        db: Database session (commit is the caller's responsibility)
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action, None for system actions
        entity_type: Kind of record acted upon ("transaction", "transfer", ...)
        entity_id: ID of that record
        metadata: Additional context as JSON

    Returns:
        Pending AuditLog instance (flushed, so its id is populated)
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[AuditLog], int]:
    """
    Retrieve the audit trail with optional filtering, most recent first.

    Returns:
        (page of AuditLog rows, total matching rows)
    """
    query = select(AuditLog)
    count_query = select(func.count(AuditLog.id))

    if action:
        query = query.where(AuditLog.action == action)
        count_query = count_query.where(AuditLog.action == action)

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)
        count_query = count_query.where(AuditLog.entity_type == entity_type)

    total = (await db.execute(count_query)).scalar()

    query = query.order_by(desc(AuditLog.created_at), desc(AuditLog.id))
    query = query.offset((page - 1) * page_size).limit(page_size)

    result = await db.execute(query)
    return list(result.scalars().all()), total
