"""
Sales API Endpoints.

Merchants record sales; confirmation, cancellation and refund drive the
ledger through the Transaction Processor.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.core.redis_client import get_redis
from vale_backend.app.db.session import get_db
from vale_backend.app.domain.sales.transaction_processor import TransactionProcessor
from vale_backend.app.schemas.sale import SaleCreate, SaleAction, SaleResponse
from vale_backend.app.services.idempotency import IdempotencyService

router = APIRouter(prefix="/sales", tags=["Sales"])


@router.post("", response_model=SaleResponse, status_code=status.HTTP_201_CREATED)
async def record_sale(
    payload: SaleCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Record a sale for a client.

    Rates are captured from the active commission settings. A repeated
    Idempotency-Key replays the original response.
    """
    scope = f"sales:{payload.merchant_id}"
    cached = await IdempotencyService.begin(redis, scope, idempotency_key)
    if cached is not None:
        return cached

    try:
        transaction = await TransactionProcessor.record_sale(
            db,
            merchant_id=payload.merchant_id,
            client_id=payload.client_id,
            gross_amount=payload.gross_amount,
            payment_method=payload.payment_method,
            description=payload.description,
        )
    except Exception:
        await IdempotencyService.release(redis, scope, idempotency_key)
        raise
    response = SaleResponse.model_validate(transaction)

    await IdempotencyService.remember(redis, scope, idempotency_key, response.model_dump(mode="json"))
    return response


@router.get("/{transaction_id}", response_model=SaleResponse)
async def get_sale(
    transaction_id: int = Path(..., description="Sale ID"),
    db: AsyncSession = Depends(get_db)
):
    return await TransactionProcessor.get_transaction(db, transaction_id)


@router.post("/{transaction_id}/complete", response_model=SaleResponse)
async def complete_sale(
    transaction_id: int = Path(..., description="Sale ID"),
    payload: Optional[SaleAction] = None,
    db: AsyncSession = Depends(get_db)
):
    """Confirm a PENDING sale: credits cashback, fee and referral commission."""
    actor_id = payload.actor_id if payload else None
    return await TransactionProcessor.complete_transaction(db, transaction_id, actor_id=actor_id)


@router.post("/{transaction_id}/cancel", response_model=SaleResponse)
async def cancel_sale(
    transaction_id: int = Path(..., description="Sale ID"),
    payload: Optional[SaleAction] = None,
    db: AsyncSession = Depends(get_db)
):
    """Cancel a sale. A completed sale has its cashback and fee reversed."""
    payload = payload or SaleAction()
    return await TransactionProcessor.cancel_transaction(
        db, transaction_id, reason=payload.reason, actor_id=payload.actor_id
    )


@router.post("/{transaction_id}/refund", response_model=SaleResponse)
async def refund_sale(
    transaction_id: int = Path(..., description="Sale ID"),
    payload: Optional[SaleAction] = None,
    db: AsyncSession = Depends(get_db)
):
    """Refund a completed sale. The client keeps the cashback."""
    payload = payload or SaleAction()
    return await TransactionProcessor.refund_transaction(
        db, transaction_id, reason=payload.reason, actor_id=payload.actor_id
    )
