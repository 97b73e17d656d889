"""
Account Ledger (Domain Logic).

Append-only ledger of signed entries per user. Balances are always computed
from the committed entries; nothing caches them.

Methods here never commit. They flush inside the caller's unit of work so a
multi-entry operation (sale completion, transfer) commits all of its entries
together or none of them.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional, Dict, List, Tuple, AsyncIterator

from sqlalchemy import select, func, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.core.exceptions import (
    AlreadyReversedError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from vale_backend.app.core.locking import resource_locks, user_key
from vale_backend.app.db.session import atomic
from vale_backend.app.models.billing_enums import TransferStatus, WithdrawalStatus
from vale_backend.app.models.enums import (
    LedgerEntryKind,
    LedgerEntryStatus,
    CREDIT_KINDS,
    DEBIT_KINDS,
    FUNDED_DEBIT_KINDS,
)
from vale_backend.app.models.ledger_entry import LedgerEntry
from vale_backend.app.models.transfer import Transfer
from vale_backend.app.models.user import User
from vale_backend.app.models.withdrawal import WithdrawalRequest
from vale_backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("vale.ledger")


@dataclass(frozen=True)
class AccountBalance:
    """Derived balance view for one user (minor units)."""
    user_id: int
    cashback_balance: int
    pending_balance: int

    @property
    def available_balance(self) -> int:
        return self.cashback_balance - self.pending_balance


@asynccontextmanager
async def locked_accounts(
    db: AsyncSession,
    *user_ids: int,
    extra_keys: Tuple[str, ...] = (),
) -> AsyncIterator[Dict[int, User]]:
    """
    Serialize work on the given users' ledgers and commit it atomically.

    Holds the per-user process locks (plus any ``extra_keys``), row-locks the
    user records with SELECT ... FOR UPDATE, yields them keyed by id, and
    commits on exit. Any exception rolls the whole unit back.
    """
    keys = tuple(user_key(user_id) for user_id in user_ids) + tuple(extra_keys)
    async with resource_locks.hold(*keys):
        async with atomic(db):
            result = await db.execute(
                select(User)
                .where(User.id.in_(set(user_ids)))
                .order_by(User.id)
                .with_for_update()
            )
            yield {user.id: user for user in result.scalars().all()}


class LedgerService:

    @staticmethod
    async def post_entry(
        db: AsyncSession,
        user_id: int,
        kind: LedgerEntryKind,
        amount: int,
        related_transaction_id: Optional[int] = None,
        related_transfer_id: Optional[int] = None,
        related_withdrawal_id: Optional[int] = None,
        reverses_entry_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> LedgerEntry:
        """
        Append one immutable entry.

        Credits must be positive and debits negative. For transfer_out and
        withdrawal the caller must hold the user's lock (see locked_accounts)
        so the balance check below cannot race another debit.

        The check here covers the posted balance only. Callers debiting a
        user must first check get_available_balance (which also subtracts
        pending withdrawals and transfers), excluding the request being
        settled.

        Args:
            db: Database session (flushed, not committed)
            user_id: Owner of the entry
            kind: LedgerEntryKind
            amount: Signed amount in minor units

        Returns:
            The flushed LedgerEntry

        Raises:
            InvalidAmountError: zero amount or sign contradicting the kind
            InsufficientFundsError: funded debit larger than the balance
        """
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmountError("Ledger amounts must be integer minor units", details={"amount": str(amount)})
        if amount == 0:
            raise InvalidAmountError("Ledger entries cannot have a zero amount")
        if kind in CREDIT_KINDS and amount < 0:
            raise InvalidAmountError(f"{kind.value} entries must be positive", details={"amount": amount})
        if kind in DEBIT_KINDS and amount > 0:
            raise InvalidAmountError(f"{kind.value} entries must be negative", details={"amount": amount})
        if kind == LedgerEntryKind.REVERSAL and reverses_entry_id is None:
            raise InvalidAmountError("Reversal entries must reference the entry they offset")

        if kind in FUNDED_DEBIT_KINDS:
            balance = await LedgerService.get_balance(db, user_id)
            if balance + amount < 0:
                logger.warning(
                    "Rejected %s of %s for user %s: balance %s", kind.value, -amount, user_id, balance
                )
                raise InsufficientFundsError(user_id, requested=-amount, available=balance)

        entry = LedgerEntry(
            user_id=user_id,
            kind=kind,
            amount=amount,
            status=LedgerEntryStatus.POSTED,
            related_transaction_id=related_transaction_id,
            related_transfer_id=related_transfer_id,
            related_withdrawal_id=related_withdrawal_id,
            reverses_entry_id=reverses_entry_id,
            description=description,
        )
        db.add(entry)
        await db.flush()

        logger.info("Posted ledger entry %s: user=%s kind=%s amount=%s", entry.id, user_id, kind.value, amount)
        return entry

    @staticmethod
    async def get_balance(db: AsyncSession, user_id: int) -> int:
        """Sum of the user's posted entries, in minor units."""
        result = await db.execute(
            select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
                LedgerEntry.user_id == user_id,
                LedgerEntry.status == LedgerEntryStatus.POSTED,
            )
        )
        return int(result.scalar())

    @staticmethod
    async def get_pending_balance(
        db: AsyncSession,
        user_id: int,
        exclude_withdrawal_id: Optional[int] = None,
        exclude_transfer_id: Optional[int] = None,
    ) -> int:
        """
        Funds reserved by pending withdrawals and pending outgoing transfers.

        ``exclude_*`` drops one reservation from the total, used when the
        reserved request itself is being settled.
        """
        withdrawals = select(func.coalesce(func.sum(WithdrawalRequest.amount), 0)).where(
            WithdrawalRequest.user_id == user_id,
            WithdrawalRequest.status == WithdrawalStatus.PENDING,
        )
        if exclude_withdrawal_id is not None:
            withdrawals = withdrawals.where(WithdrawalRequest.id != exclude_withdrawal_id)

        transfers = select(func.coalesce(func.sum(Transfer.amount), 0)).where(
            Transfer.from_user_id == user_id,
            Transfer.status == TransferStatus.PENDING,
        )
        if exclude_transfer_id is not None:
            transfers = transfers.where(Transfer.id != exclude_transfer_id)

        reserved_withdrawals = (await db.execute(withdrawals)).scalar()
        reserved_transfers = (await db.execute(transfers)).scalar()
        return int(reserved_withdrawals) + int(reserved_transfers)

    @staticmethod
    async def get_available_balance(db: AsyncSession, user_id: int, **exclude) -> int:
        """Balance minus pending reservations."""
        balance = await LedgerService.get_balance(db, user_id)
        pending = await LedgerService.get_pending_balance(db, user_id, **exclude)
        return balance - pending

    @staticmethod
    async def balance_snapshot(db: AsyncSession, user_id: int) -> AccountBalance:
        return AccountBalance(
            user_id=user_id,
            cashback_balance=await LedgerService.get_balance(db, user_id),
            pending_balance=await LedgerService.get_pending_balance(db, user_id),
        )

    @staticmethod
    async def get_entry(db: AsyncSession, entry_id: int) -> LedgerEntry:
        entry = await db.get(LedgerEntry, entry_id)
        if not entry:
            raise ResourceNotFoundError("Ledger entry", entry_id)
        return entry

    @staticmethod
    async def find_entry(
        db: AsyncSession,
        kind: LedgerEntryKind,
        related_transaction_id: int,
    ) -> Optional[LedgerEntry]:
        """The first entry of ``kind`` linked to a sale, if any."""
        result = await db.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.kind == kind,
                LedgerEntry.related_transaction_id == related_transaction_id,
            )
            .order_by(LedgerEntry.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def reverse(
        db: AsyncSession,
        entry_id: int,
        description: Optional[str] = None,
    ) -> LedgerEntry:
        """
        Post an equal and opposite reversal entry referencing ``entry_id``.

        Reversals are not balance-checked: cancelling credited cashback may
        leave the user below zero if it was already spent.

        Raises:
            ResourceNotFoundError: unknown entry
            InvalidStateTransitionError: the entry is itself a reversal
            AlreadyReversedError: a reversal for the entry already exists
        """
        original = await LedgerService.get_entry(db, entry_id)

        if original.kind == LedgerEntryKind.REVERSAL:
            raise InvalidStateTransitionError("ledger entry", LedgerEntryKind.REVERSAL.value, "reversed")

        existing = await db.execute(
            select(LedgerEntry.id).where(LedgerEntry.reverses_entry_id == entry_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise AlreadyReversedError(entry_id)

        try:
            reversal = await LedgerService.post_entry(
                db,
                user_id=original.user_id,
                kind=LedgerEntryKind.REVERSAL,
                amount=-original.amount,
                related_transaction_id=original.related_transaction_id,
                related_transfer_id=original.related_transfer_id,
                related_withdrawal_id=original.related_withdrawal_id,
                reverses_entry_id=original.id,
                description=description or f"Reversal of entry {original.id}",
            )
        except IntegrityError:
            # Unique reverses_entry_id: a concurrent reversal won
            raise AlreadyReversedError(entry_id)

        return reversal

    @staticmethod
    async def reverse_entry(
        db: AsyncSession,
        entry_id: int,
        admin_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> LedgerEntry:
        """Standalone reversal (admin correction), committed on its own."""
        original = await LedgerService.get_entry(db, entry_id)

        async with locked_accounts(db, original.user_id):
            reversal = await LedgerService.reverse(db, entry_id, description=reason)
            await log_event(
                db,
                action=AuditAction.LEDGER_ENTRY_REVERSED,
                actor_id=admin_id,
                entity_type="ledger_entry",
                entity_id=entry_id,
                metadata={"reversal_entry_id": reversal.id, "amount": reversal.amount, "reason": reason},
            )

        return reversal

    @staticmethod
    async def list_entries(
        db: AsyncSession,
        user_id: int,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Tuple[LedgerEntry, Optional[int]]], int]:
        """
        Paginated ledger history, newest first.

        Returns:
            ([(entry, id of the reversal offsetting it or None)], total entries)
        """
        total = (
            await db.execute(select(func.count(LedgerEntry.id)).where(LedgerEntry.user_id == user_id))
        ).scalar()

        result = await db.execute(
            select(LedgerEntry)
            .where(LedgerEntry.user_id == user_id)
            .order_by(desc(LedgerEntry.created_at), desc(LedgerEntry.id))
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        entries = list(result.scalars().all())

        reversed_by: Dict[int, int] = {}
        if entries:
            reversals = await db.execute(
                select(LedgerEntry.reverses_entry_id, LedgerEntry.id).where(
                    LedgerEntry.reverses_entry_id.in_([entry.id for entry in entries])
                )
            )
            reversed_by = {original_id: reversal_id for original_id, reversal_id in reversals.all()}

        return [(entry, reversed_by.get(entry.id)) for entry in entries], total
