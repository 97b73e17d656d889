"""
Withdrawal API Endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.core.guards import require_admin
from vale_backend.app.core.redis_client import get_redis
from vale_backend.app.db.session import get_db
from vale_backend.app.domain.payouts.withdrawal_service import WithdrawalService
from vale_backend.app.models.user import User
from vale_backend.app.schemas.payout import WithdrawalCreate, WithdrawalResolve, WithdrawalResponse
from vale_backend.app.services.idempotency import IdempotencyService

router = APIRouter(prefix="/withdrawals", tags=["Withdrawals"])


@router.post("", response_model=WithdrawalResponse, status_code=status.HTTP_201_CREATED)
async def request_withdrawal(
    payload: WithdrawalCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Request a payout. The amount is reserved until an admin resolves it.
    """
    scope = f"withdrawals:{payload.user_id}"
    cached = await IdempotencyService.begin(redis, scope, idempotency_key)
    if cached is not None:
        return cached

    try:
        withdrawal = await WithdrawalService.request_withdrawal(
            db,
            user_id=payload.user_id,
            amount=payload.amount,
            payment_method=payload.payment_method,
            payment_details=payload.payment_details,
        )
    except Exception:
        await IdempotencyService.release(redis, scope, idempotency_key)
        raise
    response = WithdrawalResponse.model_validate(withdrawal)

    await IdempotencyService.remember(redis, scope, idempotency_key, response.model_dump(mode="json"))
    return response


@router.post("/{withdrawal_id}/resolve", response_model=WithdrawalResponse)
async def resolve_withdrawal(
    payload: WithdrawalResolve,
    withdrawal_id: int = Path(..., description="Withdrawal ID"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Complete (posts the withdrawal debit) or reject (releases the reservation)
    a PENDING withdrawal.
    """
    return await WithdrawalService.resolve_withdrawal(
        db, withdrawal_id, outcome=payload.status, admin_id=admin.id, notes=payload.notes
    )
