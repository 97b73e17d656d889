"""
Withdrawal Service (Domain Logic).

    PENDING -> COMPLETED | REJECTED

A pending request reserves its amount (reduces available balance) without
posting anything. Completion posts the withdrawal debit; rejection releases
the reservation.
"""

import logging
from typing import Optional, List, Tuple, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.core.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from vale_backend.app.core.locking import withdrawal_key
from vale_backend.app.db.session import get_for_update, utcnow
from vale_backend.app.domain.ledger.ledger_service import LedgerService, locked_accounts
from vale_backend.app.domain.money import format_minor_units
from vale_backend.app.domain.sales.rate_resolver import RateResolver
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.models.billing_enums import WithdrawalStatus, WithdrawalMethod
from vale_backend.app.models.enums import LedgerEntryKind
from vale_backend.app.models.withdrawal import WithdrawalRequest
from vale_backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("vale.withdrawals")

RESOLUTIONS = (WithdrawalStatus.COMPLETED, WithdrawalStatus.REJECTED)


class WithdrawalService:

    @staticmethod
    async def request_withdrawal(
        db: AsyncSession,
        user_id: int,
        amount: int,
        payment_method: WithdrawalMethod,
        payment_details: Optional[Dict[str, Any]] = None,
    ) -> WithdrawalRequest:
        """
        Create a pending withdrawal request.

        Raises:
            InvalidAmountError: below the active minimum withdrawal
            InsufficientFundsError: amount exceeds the available balance
            InvalidUserError: user is not active
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError("Withdrawal amount must be positive", details={"amount": str(amount)})

        async with locked_accounts(db, user_id) as users:
            UserService.check_user(users.get(user_id), user_id)

            setting = await RateResolver.resolve_active(db)
            if amount < setting.min_withdrawal_amount:
                raise InvalidAmountError(
                    f"Minimum withdrawal is {format_minor_units(setting.min_withdrawal_amount)}",
                    details={"amount": amount, "min_withdrawal_amount": setting.min_withdrawal_amount},
                )

            available = await LedgerService.get_available_balance(db, user_id)
            if amount > available:
                logger.warning("Rejected withdrawal of %s for user %s: available %s", amount, user_id, available)
                raise InsufficientFundsError(user_id, requested=amount, available=available)

            withdrawal = WithdrawalRequest(
                user_id=user_id,
                amount=amount,
                payment_method=payment_method,
                payment_details=payment_details or {},
                status=WithdrawalStatus.PENDING,
            )
            db.add(withdrawal)
            await db.flush()

            await log_event(
                db,
                action=AuditAction.WITHDRAWAL_REQUESTED,
                actor_id=user_id,
                entity_type="withdrawal",
                entity_id=withdrawal.id,
                metadata={"amount": amount, "payment_method": payment_method.value},
            )

        logger.info("Withdrawal %s requested: user=%s amount=%s", withdrawal.id, user_id, amount)
        return withdrawal

    @staticmethod
    async def resolve_withdrawal(
        db: AsyncSession,
        withdrawal_id: int,
        outcome: WithdrawalStatus,
        admin_id: int,
        notes: Optional[str] = None,
    ) -> WithdrawalRequest:
        """
        Admin completes or rejects a pending withdrawal.

        Raises:
            InsufficientPermissionsError: admin_id is not an active admin
            ResourceNotFoundError: unknown withdrawal
            InvalidStateTransitionError: already resolved, or bad outcome
            InsufficientFundsError: balance no longer covers the amount
        """
        await UserService.require_admin(db, admin_id)
        withdrawal = await WithdrawalService.get_withdrawal(db, withdrawal_id)
        if outcome not in RESOLUTIONS:
            raise InvalidStateTransitionError("withdrawal", withdrawal.status.value, outcome.value)

        async with locked_accounts(db, withdrawal.user_id, extra_keys=(withdrawal_key(withdrawal_id),)):
            withdrawal = await get_for_update(db, WithdrawalRequest, withdrawal_id, "Withdrawal")
            if withdrawal.status != WithdrawalStatus.PENDING:
                raise InvalidStateTransitionError("withdrawal", withdrawal.status.value, outcome.value)

            if outcome == WithdrawalStatus.COMPLETED:
                available = await LedgerService.get_available_balance(
                    db, withdrawal.user_id, exclude_withdrawal_id=withdrawal.id
                )
                if withdrawal.amount > available:
                    raise InsufficientFundsError(withdrawal.user_id, requested=withdrawal.amount, available=available)

                await LedgerService.post_entry(
                    db,
                    user_id=withdrawal.user_id,
                    kind=LedgerEntryKind.WITHDRAWAL,
                    amount=-withdrawal.amount,
                    related_withdrawal_id=withdrawal.id,
                    description=f"Withdrawal {withdrawal.id} via {withdrawal.payment_method.value}",
                )
                action = AuditAction.WITHDRAWAL_COMPLETED
            else:
                action = AuditAction.WITHDRAWAL_REJECTED

            withdrawal.status = outcome
            withdrawal.admin_notes = notes
            withdrawal.resolved_by_id = admin_id
            withdrawal.resolved_at = utcnow()
            await db.flush()

            await log_event(
                db,
                action=action,
                actor_id=admin_id,
                entity_type="withdrawal",
                entity_id=withdrawal.id,
                metadata={"amount": withdrawal.amount, "notes": notes},
            )

        logger.info("Admin %s resolved withdrawal %s as %s", admin_id, withdrawal_id, outcome.value)
        return withdrawal

    @staticmethod
    async def get_withdrawal(db: AsyncSession, withdrawal_id: int) -> WithdrawalRequest:
        withdrawal = await db.get(WithdrawalRequest, withdrawal_id)
        if not withdrawal:
            raise ResourceNotFoundError("Withdrawal", withdrawal_id)
        return withdrawal

    @staticmethod
    async def list_withdrawals(
        db: AsyncSession,
        user_id: Optional[int] = None,
        status: Optional[WithdrawalStatus] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[WithdrawalRequest], int]:
        filters = []
        if user_id is not None:
            filters.append(WithdrawalRequest.user_id == user_id)
        if status:
            filters.append(WithdrawalRequest.status == status)

        total = (await db.execute(select(func.count(WithdrawalRequest.id)).where(*filters))).scalar()
        result = await db.execute(
            select(WithdrawalRequest)
            .where(*filters)
            .order_by(WithdrawalRequest.created_at.desc(), WithdrawalRequest.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total
