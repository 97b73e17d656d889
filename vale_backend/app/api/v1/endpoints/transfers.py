"""
Transfer API Endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.core.redis_client import get_redis
from vale_backend.app.db.session import get_db
from vale_backend.app.domain.payouts.transfer_service import TransferService
from vale_backend.app.schemas.payout import TransferCreate, TransferResponse
from vale_backend.app.services.idempotency import IdempotencyService

router = APIRouter(prefix="/transfers", tags=["Transfers"])


@router.post("", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    payload: TransferCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Transfer cashback balance to another user.

    Completes immediately unless transfers require admin approval.
    """
    scope = f"transfers:{payload.from_user_id}"
    cached = await IdempotencyService.begin(redis, scope, idempotency_key)
    if cached is not None:
        return cached

    try:
        transfer = await TransferService.initiate_transfer(
            db,
            from_user_id=payload.from_user_id,
            to_user_id=payload.to_user_id,
            amount=payload.amount,
            description=payload.description,
        )
    except Exception:
        await IdempotencyService.release(redis, scope, idempotency_key)
        raise
    response = TransferResponse.model_validate(transfer)

    await IdempotencyService.remember(redis, scope, idempotency_key, response.model_dump(mode="json"))
    return response
