"""
User API Endpoints.

Registration, profile lookup and referral summary.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.db.session import get_db
from vale_backend.app.domain.payouts.transfer_service import TransferService
from vale_backend.app.domain.payouts.withdrawal_service import WithdrawalService
from vale_backend.app.domain.referrals.referral_engine import ReferralEngine
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.schemas.payout import TransferListResponse, WithdrawalListResponse
from vale_backend.app.schemas.user import UserCreate, UserResponse, ReferralSummaryResponse

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a client or merchant.

    An optional referral_code links the new user to their referrer; the link
    is fixed at registration.
    """
    return await UserService.register_user(
        db,
        name=payload.name,
        email=payload.email,
        role=payload.role,
        referral_code=payload.referral_code,
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int = Path(..., description="User ID"),
    db: AsyncSession = Depends(get_db)
):
    return await UserService.get_user(db, user_id)


@router.get("/{user_id}/referrals", response_model=ReferralSummaryResponse)
async def get_referrals(
    user_id: int = Path(..., description="User ID"),
    db: AsyncSession = Depends(get_db)
):
    """Users referred by this user and the commission earned from them."""
    return await ReferralEngine.referral_summary(db, user_id)


@router.get("/{user_id}/transfers", response_model=TransferListResponse)
async def list_user_transfers(
    user_id: int = Path(..., description="User ID"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """Transfers sent or received by the user, newest first."""
    await UserService.get_user(db, user_id)
    transfers, total = await TransferService.list_transfers(db, user_id=user_id, page=page, page_size=page_size)
    return TransferListResponse(transfers=transfers, total=total, page=page, page_size=page_size)


@router.get("/{user_id}/withdrawals", response_model=WithdrawalListResponse)
async def list_user_withdrawals(
    user_id: int = Path(..., description="User ID"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    await UserService.get_user(db, user_id)
    withdrawals, total = await WithdrawalService.list_withdrawals(
        db, user_id=user_id, page=page, page_size=page_size
    )
    return WithdrawalListResponse(withdrawals=withdrawals, total=total, page=page, page_size=page_size)
