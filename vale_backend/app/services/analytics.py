"""
Analytics Service.

Handles data aggregation for the admin dashboard.
Focused on READ-ONLY operations.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from vale_backend.app.models.billing_enums import TransactionStatus, TransferStatus, WithdrawalStatus
from vale_backend.app.models.enums import LedgerEntryKind
from vale_backend.app.models.ledger_entry import LedgerEntry
from vale_backend.app.models.transaction import Transaction
from vale_backend.app.models.transfer import Transfer
from vale_backend.app.models.user import User
from vale_backend.app.models.withdrawal import WithdrawalRequest
from vale_backend.app.schemas.analytics import AdminDashboardStats


class AnalyticsService:

    @staticmethod
    async def get_admin_dashboard(db: AsyncSession) -> AdminDashboardStats:
        """Get system-wide stats for Admins."""

        # 1. Users per role
        users = await db.execute(select(User.role, func.count(User.id)).group_by(User.role))
        users_by_role = {role.value: count for role, count in users.all()}

        # 2. Sales per status
        sales = await db.execute(
            select(Transaction.status, func.count(Transaction.id)).group_by(Transaction.status)
        )
        transactions_by_status = {status.value: count for status, count in sales.all()}

        # 3. Completed volume (cancelled/refunded sales excluded)
        volume = (await db.execute(
            select(func.coalesce(func.sum(Transaction.gross_amount), 0)).where(
                Transaction.status == TransactionStatus.COMPLETED
            )
        )).scalar()

        # 4. Credits by kind
        credited = await db.execute(
            select(LedgerEntry.kind, func.coalesce(func.sum(LedgerEntry.amount), 0))
            .where(LedgerEntry.kind.in_([LedgerEntryKind.SALE_CASHBACK, LedgerEntryKind.REFERRAL_COMMISSION]))
            .group_by(LedgerEntry.kind)
        )
        credited_by_kind = {kind: int(total) for kind, total in credited.all()}

        # 5. Pending payout queue
        pending_withdrawals = (await db.execute(
            select(func.count(WithdrawalRequest.id), func.coalesce(func.sum(WithdrawalRequest.amount), 0)).where(
                WithdrawalRequest.status == WithdrawalStatus.PENDING
            )
        )).one()
        pending_transfers = (await db.execute(
            select(func.count(Transfer.id)).where(Transfer.status == TransferStatus.PENDING)
        )).scalar()

        return AdminDashboardStats(
            users_by_role=users_by_role,
            transactions_by_status=transactions_by_status,
            completed_sales_volume=int(volume),
            total_cashback_credited=credited_by_kind.get(LedgerEntryKind.SALE_CASHBACK, 0),
            total_referral_commission=credited_by_kind.get(LedgerEntryKind.REFERRAL_COMMISSION, 0),
            pending_withdrawals_count=pending_withdrawals[0],
            pending_withdrawals_amount=int(pending_withdrawals[1]),
            pending_transfers_count=pending_transfers,
        )
