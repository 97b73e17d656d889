"""
Transfer Service (Domain Logic).

Peer-to-peer movement of cashback balance:

    PENDING -> COMPLETED | CANCELLED

A transfer posts its transfer_out/transfer_in pair only on completion, in a
single commit. While PENDING (approval required) the amount is reserved
against the sender's available balance.
"""

import logging
from typing import Optional, List, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.core.config import settings
from vale_backend.app.core.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    InvalidStateTransitionError,
    InvalidUserError,
    ResourceNotFoundError,
)
from vale_backend.app.core.locking import transfer_key
from vale_backend.app.db.session import get_for_update, utcnow
from vale_backend.app.domain.ledger.ledger_service import LedgerService, locked_accounts
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.models.billing_enums import TransferStatus
from vale_backend.app.models.enums import LedgerEntryKind
from vale_backend.app.models.transfer import Transfer
from vale_backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("vale.transfers")

RESOLUTIONS = (TransferStatus.COMPLETED, TransferStatus.CANCELLED)


async def _settle(db: AsyncSession, transfer: Transfer) -> None:
    await LedgerService.post_entry(
        db,
        user_id=transfer.from_user_id,
        kind=LedgerEntryKind.TRANSFER_OUT,
        amount=-transfer.amount,
        related_transfer_id=transfer.id,
        description=f"Transfer {transfer.id} to user {transfer.to_user_id}",
    )
    await LedgerService.post_entry(
        db,
        user_id=transfer.to_user_id,
        kind=LedgerEntryKind.TRANSFER_IN,
        amount=transfer.amount,
        related_transfer_id=transfer.id,
        description=f"Transfer {transfer.id} from user {transfer.from_user_id}",
    )
    transfer.status = TransferStatus.COMPLETED
    transfer.resolved_at = utcnow()
    await db.flush()


class TransferService:

    @staticmethod
    async def initiate_transfer(
        db: AsyncSession,
        from_user_id: int,
        to_user_id: int,
        amount: int,
        description: Optional[str] = None,
    ) -> Transfer:
        """
        Move balance from one user to another.

        Both users' ledgers are locked for the duration of the check-and-post.

        Raises:
            InvalidAmountError: amount is not a positive integer
            InvalidUserError: self-transfer or an inactive party
            ResourceNotFoundError: unknown sender or recipient
            InsufficientFundsError: amount exceeds the sender's available balance
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError("Transfer amount must be positive", details={"amount": str(amount)})
        if from_user_id == to_user_id:
            raise InvalidUserError("Cannot transfer to yourself", details={"user_id": from_user_id})

        async with locked_accounts(db, from_user_id, to_user_id) as users:
            UserService.check_user(users.get(from_user_id), from_user_id, label="Sender")
            UserService.check_user(users.get(to_user_id), to_user_id, label="Recipient")

            available = await LedgerService.get_available_balance(db, from_user_id)
            if amount > available:
                logger.warning(
                    "Rejected transfer of %s from user %s: available %s", amount, from_user_id, available
                )
                raise InsufficientFundsError(from_user_id, requested=amount, available=available)

            transfer = Transfer(
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                amount=amount,
                description=description,
                status=TransferStatus.PENDING,
            )
            db.add(transfer)
            await db.flush()

            await log_event(
                db,
                action=AuditAction.TRANSFER_CREATED,
                actor_id=from_user_id,
                entity_type="transfer",
                entity_id=transfer.id,
                metadata={"to_user_id": to_user_id, "amount": amount},
            )

            if not settings.transfer_requires_approval:
                await _settle(db, transfer)
                await log_event(
                    db,
                    action=AuditAction.TRANSFER_COMPLETED,
                    actor_id=from_user_id,
                    entity_type="transfer",
                    entity_id=transfer.id,
                )

        logger.info(
            "Transfer %s: %s -> %s amount=%s status=%s",
            transfer.id, from_user_id, to_user_id, amount, transfer.status.value,
        )
        return transfer

    @staticmethod
    async def resolve_transfer(
        db: AsyncSession,
        transfer_id: int,
        outcome: TransferStatus,
        admin_id: int,
        notes: Optional[str] = None,
    ) -> Transfer:
        """
        Admin approves (COMPLETED) or cancels (CANCELLED) a pending transfer.

        Raises:
            InsufficientPermissionsError: admin_id is not an active admin
            ResourceNotFoundError: unknown transfer
            InvalidStateTransitionError: transfer is not PENDING or bad outcome
            InsufficientFundsError: sender can no longer cover the amount
        """
        await UserService.require_admin(db, admin_id)
        transfer = await TransferService.get_transfer(db, transfer_id)
        if outcome not in RESOLUTIONS:
            raise InvalidStateTransitionError("transfer", transfer.status.value, outcome.value)

        async with locked_accounts(
            db, transfer.from_user_id, transfer.to_user_id, extra_keys=(transfer_key(transfer_id),)
        ):
            transfer = await get_for_update(db, Transfer, transfer_id, "Transfer")
            if transfer.status != TransferStatus.PENDING:
                raise InvalidStateTransitionError("transfer", transfer.status.value, outcome.value)

            if outcome == TransferStatus.COMPLETED:
                available = await LedgerService.get_available_balance(
                    db, transfer.from_user_id, exclude_transfer_id=transfer.id
                )
                if transfer.amount > available:
                    raise InsufficientFundsError(transfer.from_user_id, requested=transfer.amount, available=available)
                await _settle(db, transfer)
                action = AuditAction.TRANSFER_COMPLETED
            else:
                transfer.status = TransferStatus.CANCELLED
                transfer.resolved_at = utcnow()
                action = AuditAction.TRANSFER_CANCELLED

            transfer.resolved_by_id = admin_id
            transfer.notes = notes
            await db.flush()

            await log_event(
                db,
                action=action,
                actor_id=admin_id,
                entity_type="transfer",
                entity_id=transfer.id,
                metadata={"notes": notes},
            )

        logger.info("Admin %s resolved transfer %s as %s", admin_id, transfer_id, outcome.value)
        return transfer

    @staticmethod
    async def get_transfer(db: AsyncSession, transfer_id: int) -> Transfer:
        transfer = await db.get(Transfer, transfer_id)
        if not transfer:
            raise ResourceNotFoundError("Transfer", transfer_id)
        return transfer

    @staticmethod
    async def list_transfers(
        db: AsyncSession,
        user_id: Optional[int] = None,
        status: Optional[TransferStatus] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Transfer], int]:
        """Transfers sent or received by ``user_id`` (all when None), newest first."""
        filters = []
        if user_id is not None:
            filters.append(or_(Transfer.from_user_id == user_id, Transfer.to_user_id == user_id))
        if status:
            filters.append(Transfer.status == status)

        total = (await db.execute(select(func.count(Transfer.id)).where(*filters))).scalar()
        result = await db.execute(
            select(Transfer)
            .where(*filters)
            .order_by(Transfer.created_at.desc(), Transfer.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total
