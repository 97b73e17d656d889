"""
Admin API Endpoints.

Rate management, oversight lists, payout approvals, user status, merchant
approval and fee rates, ledger corrections, audit log and dashboard. Every
route requires X-Admin-Id.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.api.v1.endpoints.ledger import entry_response
from vale_backend.app.core.guards import require_admin
from vale_backend.app.db.session import get_db
from vale_backend.app.domain.ledger.ledger_service import LedgerService
from vale_backend.app.domain.payouts.transfer_service import TransferService
from vale_backend.app.domain.payouts.withdrawal_service import WithdrawalService
from vale_backend.app.domain.sales.rate_resolver import RateResolver
from vale_backend.app.domain.sales.transaction_processor import TransactionProcessor
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.models.billing_enums import TransactionStatus, TransferStatus, WithdrawalStatus
from vale_backend.app.models.enums import UserRole
from vale_backend.app.models.user import User
from vale_backend.app.schemas.admin import AuditLogListResponse
from vale_backend.app.schemas.analytics import AdminDashboardStats
from vale_backend.app.schemas.ledger import LedgerEntryResponse, ReverseEntryRequest
from vale_backend.app.schemas.payout import (
    TransferListResponse, TransferResolve, TransferResponse, WithdrawalListResponse,
)
from vale_backend.app.schemas.rates import RatesUpdate, RatesResponse, RatesHistoryResponse
from vale_backend.app.schemas.sale import SaleListResponse
from vale_backend.app.schemas.user import (
    MerchantApprovalUpdate, MerchantFeeRateUpdate, UserListResponse, UserResponse, UserStatusUpdate,
)
from vale_backend.app.services.analytics import AnalyticsService
from vale_backend.app.services.audit import get_audit_trail

router = APIRouter(prefix="/admin", tags=["Admin"])


# ============================================================================
# RATES
# ============================================================================

@router.get("/rates", response_model=RatesResponse)
async def get_rates(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Commission settings currently in effect."""
    setting = await RateResolver.resolve_active(db)
    await db.commit()
    return setting


@router.post("/rates", response_model=RatesResponse, status_code=status.HTTP_201_CREATED)
async def update_rates(
    payload: RatesUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Publish a new rate version. Sales already recorded keep their captured rates.
    """
    return await RateResolver.create_version(
        db,
        admin_id=admin.id,
        cashback_rate=payload.cashback_rate,
        referral_commission_rate=payload.referral_commission_rate,
        platform_fee_rate=payload.platform_fee_rate,
        min_withdrawal=payload.min_withdrawal,
    )


@router.get("/rates/history", response_model=RatesHistoryResponse)
async def rates_history(
    limit: int = Query(50, ge=1, le=200),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return RatesHistoryResponse(versions=await RateResolver.list_versions(db, limit=limit))


# ============================================================================
# OVERSIGHT LISTS
# ============================================================================

@router.get("/users", response_model=UserListResponse)
async def list_users(
    role: Optional[UserRole] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    users, total = await UserService.list_users(db, role=role, page=page, page_size=page_size)
    return UserListResponse(users=users, total=total, page=page, page_size=page_size)


@router.get("/transactions", response_model=SaleListResponse)
async def list_transactions(
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    merchant_id: Optional[int] = Query(None),
    client_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    transactions, total = await TransactionProcessor.list_transactions(
        db, status=status_filter, merchant_id=merchant_id, client_id=client_id, page=page, page_size=page_size
    )
    return SaleListResponse(transactions=transactions, total=total, page=page, page_size=page_size)


@router.get("/transfers", response_model=TransferListResponse)
async def list_transfers(
    status_filter: Optional[TransferStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    transfers, total = await TransferService.list_transfers(
        db, status=status_filter, page=page, page_size=page_size
    )
    return TransferListResponse(transfers=transfers, total=total, page=page, page_size=page_size)


@router.post("/transfers/{transfer_id}/resolve", response_model=TransferResponse)
async def resolve_transfer(
    payload: TransferResolve,
    transfer_id: int = Path(..., description="Transfer ID"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Approve (completed) or cancel (cancelled) a PENDING transfer."""
    return await TransferService.resolve_transfer(
        db, transfer_id, outcome=payload.status, admin_id=admin.id, notes=payload.notes
    )


@router.get("/withdrawals", response_model=WithdrawalListResponse)
async def list_withdrawals(
    status_filter: Optional[WithdrawalStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    withdrawals, total = await WithdrawalService.list_withdrawals(
        db, status=status_filter, page=page, page_size=page_size
    )
    return WithdrawalListResponse(withdrawals=withdrawals, total=total, page=page, page_size=page_size)


# ============================================================================
# USERS AND LEDGER CORRECTIONS
# ============================================================================

@router.post("/users/{user_id}/status", response_model=UserResponse)
async def set_user_status(
    payload: UserStatusUpdate,
    user_id: int = Path(..., description="User ID"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Activate, deactivate or block a user. Referral links are unaffected."""
    return await UserService.set_status(db, user_id, payload.status, admin_id=admin.id)


@router.post("/merchants/{merchant_id}/approval", response_model=UserResponse)
async def set_merchant_approval(
    payload: MerchantApprovalUpdate,
    merchant_id: int = Path(..., description="Merchant user ID"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Approve a merchant store (or withdraw approval). Unapproved merchants cannot record sales."""
    return await UserService.set_merchant_approval(db, merchant_id, payload.approved, admin_id=admin.id)


@router.post("/merchants/{merchant_id}/fee-rate", response_model=UserResponse)
async def set_merchant_fee_rate(
    payload: MerchantFeeRateUpdate,
    merchant_id: int = Path(..., description="Merchant user ID"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await UserService.set_merchant_fee_rate(
        db, merchant_id, payload.platform_fee_rate, admin_id=admin.id
    )


@router.post("/ledger/{entry_id}/reverse", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED)
async def reverse_ledger_entry(
    payload: ReverseEntryRequest,
    entry_id: int = Path(..., description="Ledger entry ID"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Post an equal and opposite reversal of a ledger entry."""
    reversal = await LedgerService.reverse_entry(db, entry_id, admin_id=admin.id, reason=payload.reason)
    return entry_response(reversal)


# ============================================================================
# AUDIT AND DASHBOARD
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    action: Optional[str] = Query(None, description="Filter by action"),
    entity_type: Optional[str] = Query(None, description="Filter by entity type"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Audit log, most recent first."""
    logs, total = await get_audit_trail(db, action=action, entity_type=entity_type, page=page, page_size=page_size)
    return AuditLogListResponse(logs=logs, total=total, page=page, page_size=page_size)


@router.get("/dashboard", response_model=AdminDashboardStats)
async def get_dashboard(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await AnalyticsService.get_admin_dashboard(db)
