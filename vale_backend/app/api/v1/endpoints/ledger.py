"""
Balance and Ledger API Endpoints.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.db.session import get_db
from vale_backend.app.domain.ledger.ledger_service import LedgerService
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.models.enums import LedgerEntryStatus
from vale_backend.app.schemas.ledger import BalanceResponse, LedgerEntryResponse, LedgerPage

router = APIRouter(tags=["Ledger"])


def entry_response(entry, reversed_by_id=None) -> LedgerEntryResponse:
    """Render an entry, reporting it REVERSED when a reversal offsets it."""
    response = LedgerEntryResponse.model_validate(entry)
    if reversed_by_id is not None:
        response = response.model_copy(
            update={"status": LedgerEntryStatus.REVERSED, "reversed_by_id": reversed_by_id}
        )
    return response


@router.get("/balance/{user_id}", response_model=BalanceResponse)
async def get_balance(
    user_id: int = Path(..., description="User ID"),
    db: AsyncSession = Depends(get_db)
):
    """Cashback balance, funds reserved by pending requests, and available balance."""
    await UserService.get_user(db, user_id)
    return await LedgerService.balance_snapshot(db, user_id)


@router.get("/ledger/{user_id}", response_model=LedgerPage)
async def get_ledger(
    user_id: int = Path(..., description="User ID"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    """Ledger history, newest first."""
    await UserService.get_user(db, user_id)
    rows, total = await LedgerService.list_entries(db, user_id, page=page, page_size=page_size)
    return LedgerPage(
        entries=[entry_response(entry, reversed_by_id) for entry, reversed_by_id in rows],
        total=total,
        page=page,
        page_size=page_size,
    )
