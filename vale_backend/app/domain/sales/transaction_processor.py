"""
Transaction Processor (Domain Logic).

Owns the sale lifecycle:

    PENDING -> COMPLETED -> CANCELLED | REFUNDED
    PENDING -> CANCELLED

Rules:
- Cashback, platform fee and referral rates are captured from the active
  commission setting when the sale is recorded and never re-derived. A
  merchant with its own platform fee rate has that rate captured instead.
- Completion posts sale_cashback (client), platform_fee (merchant) and the
  referrer's referral_commission in ONE commit.
- Cancelling a completed sale reverses the cashback and platform fee entries.
  The referral commission stays posted.
- Refunding a completed sale has no ledger effect; the client keeps cashback.
"""

import logging
from typing import Optional, List, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.core.config import settings
from vale_backend.app.core.exceptions import (
    InvalidAmountError,
    InvalidStateTransitionError,
    InvalidUserError,
    ResourceNotFoundError,
)
from vale_backend.app.core.locking import resource_locks, sale_key
from vale_backend.app.db.session import atomic, get_for_update, utcnow
from vale_backend.app.domain.ledger.ledger_service import LedgerService
from vale_backend.app.domain.money import apply_bps
from vale_backend.app.domain.referrals.referral_engine import ReferralEngine
from vale_backend.app.domain.sales.rate_resolver import RateResolver
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.models.billing_enums import TransactionStatus, PaymentMethod
from vale_backend.app.models.enums import UserRole, LedgerEntryKind
from vale_backend.app.models.transaction import Transaction
from vale_backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("vale.sales")

ALLOWED_TRANSITIONS = {
    TransactionStatus.PENDING: {TransactionStatus.COMPLETED, TransactionStatus.CANCELLED},
    TransactionStatus.COMPLETED: {TransactionStatus.CANCELLED, TransactionStatus.REFUNDED},
    TransactionStatus.CANCELLED: set(),
    TransactionStatus.REFUNDED: set(),
}


def _check_transition(transaction: Transaction, target: TransactionStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[transaction.status]:
        logger.warning(
            "Rejected sale %s transition %s -> %s", transaction.id, transaction.status.value, target.value
        )
        raise InvalidStateTransitionError("transaction", transaction.status.value, target.value)


class TransactionProcessor:

    @staticmethod
    async def record_sale(
        db: AsyncSession,
        merchant_id: int,
        client_id: int,
        gross_amount: int,
        payment_method: PaymentMethod,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Record a merchant sale for a client.

        The sale is PENDING until confirmed, unless confirmation is switched
        off (SALE_REQUIRES_CONFIRMATION=false), in which case it is completed
        in the same commit.

        Raises:
            InvalidAmountError: gross_amount is not a positive integer
            ResourceNotFoundError: unknown merchant or client
            InvalidUserError: wrong role, inactive party or unapproved merchant
        """
        if isinstance(gross_amount, bool) or not isinstance(gross_amount, int) or gross_amount <= 0:
            raise InvalidAmountError("Sale amount must be positive", details={"gross_amount": str(gross_amount)})

        async with atomic(db):
            merchant = await UserService.require_user(db, merchant_id, role=UserRole.MERCHANT, label="Merchant")
            if not merchant.approved:
                raise InvalidUserError(
                    f"Merchant {merchant_id} is not approved", details={"user_id": merchant_id, "approved": False}
                )
            await UserService.require_user(db, client_id, role=UserRole.CLIENT, label="Client")

            setting = await RateResolver.resolve_active(db)
            fee_rate_bps = merchant.platform_fee_rate_bps
            if fee_rate_bps is None:
                fee_rate_bps = setting.platform_fee_rate_bps

            transaction = Transaction(
                merchant_id=merchant_id,
                client_id=client_id,
                gross_amount=gross_amount,
                payment_method=payment_method,
                description=description,
                settings_version_id=setting.id,
                cashback_rate_bps=setting.cashback_rate_bps,
                referral_commission_rate_bps=setting.referral_commission_rate_bps,
                platform_fee_rate_bps=fee_rate_bps,
                cashback_amount=apply_bps(gross_amount, setting.cashback_rate_bps),
                platform_fee_amount=apply_bps(gross_amount, fee_rate_bps),
                status=TransactionStatus.PENDING,
            )
            db.add(transaction)
            await db.flush()

            await log_event(
                db,
                action=AuditAction.SALE_RECORDED,
                actor_id=merchant_id,
                entity_type="transaction",
                entity_id=transaction.id,
                metadata={
                    "gross_amount": gross_amount,
                    "cashback_amount": transaction.cashback_amount,
                    "settings_version_id": setting.id,
                },
            )

            if not settings.sale_requires_confirmation:
                await TransactionProcessor._complete(db, transaction, actor_id=merchant_id)

        logger.info(
            "Recorded sale %s: merchant=%s client=%s gross=%s status=%s",
            transaction.id, merchant_id, client_id, gross_amount, transaction.status.value,
        )
        return transaction

    @staticmethod
    async def _complete(db: AsyncSession, transaction: Transaction, actor_id: Optional[int] = None) -> None:
        """Post the completion entries and flip the status. Caller commits."""
        _check_transition(transaction, TransactionStatus.COMPLETED)

        if transaction.cashback_amount > 0:
            await LedgerService.post_entry(
                db,
                user_id=transaction.client_id,
                kind=LedgerEntryKind.SALE_CASHBACK,
                amount=transaction.cashback_amount,
                related_transaction_id=transaction.id,
                description=f"Cashback: sale {transaction.id}",
            )

        if transaction.platform_fee_amount > 0:
            await LedgerService.post_entry(
                db,
                user_id=transaction.merchant_id,
                kind=LedgerEntryKind.PLATFORM_FEE,
                amount=-transaction.platform_fee_amount,
                related_transaction_id=transaction.id,
                description=f"Platform fee: sale {transaction.id}",
            )

        await ReferralEngine.on_transaction_completed(db, transaction)

        transaction.status = TransactionStatus.COMPLETED
        transaction.completed_at = utcnow()
        await db.flush()

        await log_event(
            db,
            action=AuditAction.SALE_COMPLETED,
            actor_id=actor_id,
            entity_type="transaction",
            entity_id=transaction.id,
            metadata={"cashback_amount": transaction.cashback_amount},
        )

    @staticmethod
    async def complete_transaction(
        db: AsyncSession,
        transaction_id: int,
        actor_id: Optional[int] = None,
    ) -> Transaction:
        """
        Confirm a pending sale and post its ledger entries.

        Raises:
            ResourceNotFoundError: unknown sale
            InvalidStateTransitionError: sale is not PENDING
        """
        async with resource_locks.hold(sale_key(transaction_id)):
            async with atomic(db):
                transaction = await get_for_update(db, Transaction, transaction_id, "Transaction")
                await TransactionProcessor._complete(db, transaction, actor_id=actor_id)

        logger.info("Completed sale %s", transaction_id)
        return transaction

    @staticmethod
    async def cancel_transaction(
        db: AsyncSession,
        transaction_id: int,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Transaction:
        """
        Cancel a pending or completed sale.

        For a completed sale the sale_cashback and platform_fee entries are
        reversed in the same commit. The referral commission is not reversed.
        """
        async with resource_locks.hold(sale_key(transaction_id)):
            async with atomic(db):
                transaction = await get_for_update(db, Transaction, transaction_id, "Transaction")
                _check_transition(transaction, TransactionStatus.CANCELLED)

                reversed_entries = []
                if transaction.status == TransactionStatus.COMPLETED:
                    for kind in (LedgerEntryKind.SALE_CASHBACK, LedgerEntryKind.PLATFORM_FEE):
                        entry = await LedgerService.find_entry(db, kind, transaction.id)
                        if entry is None:
                            continue
                        reversal = await LedgerService.reverse(
                            db, entry.id, description=f"Sale {transaction.id} cancelled"
                        )
                        reversed_entries.append(reversal.id)

                previous = transaction.status
                transaction.status = TransactionStatus.CANCELLED
                transaction.status_reason = reason
                await db.flush()

                await log_event(
                    db,
                    action=AuditAction.SALE_CANCELLED,
                    actor_id=actor_id,
                    entity_type="transaction",
                    entity_id=transaction.id,
                    metadata={"from": previous.value, "reason": reason, "reversal_entry_ids": reversed_entries},
                )

        logger.info("Cancelled sale %s (was %s)", transaction_id, previous.value)
        return transaction

    @staticmethod
    async def refund_transaction(
        db: AsyncSession,
        transaction_id: int,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Transaction:
        """Mark a completed sale refunded. No ledger entries move."""
        async with resource_locks.hold(sale_key(transaction_id)):
            async with atomic(db):
                transaction = await get_for_update(db, Transaction, transaction_id, "Transaction")
                _check_transition(transaction, TransactionStatus.REFUNDED)

                transaction.status = TransactionStatus.REFUNDED
                transaction.status_reason = reason
                await db.flush()

                await log_event(
                    db,
                    action=AuditAction.SALE_REFUNDED,
                    actor_id=actor_id,
                    entity_type="transaction",
                    entity_id=transaction.id,
                    metadata={"reason": reason},
                )

        logger.info("Refunded sale %s", transaction_id)
        return transaction

    @staticmethod
    async def get_transaction(db: AsyncSession, transaction_id: int) -> Transaction:
        transaction = await db.get(Transaction, transaction_id)
        if not transaction:
            raise ResourceNotFoundError("Transaction", transaction_id)
        return transaction

    @staticmethod
    async def list_transactions(
        db: AsyncSession,
        status: Optional[TransactionStatus] = None,
        merchant_id: Optional[int] = None,
        client_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Transaction], int]:
        filters = []
        if status:
            filters.append(Transaction.status == status)
        if merchant_id is not None:
            filters.append(Transaction.merchant_id == merchant_id)
        if client_id is not None:
            filters.append(Transaction.client_id == client_id)

        total = (await db.execute(select(func.count(Transaction.id)).where(*filters))).scalar()
        result = await db.execute(
            select(Transaction)
            .where(*filters)
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total
