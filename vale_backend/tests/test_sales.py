"""
Sale lifecycle tests.

Covers recording, completion postings, cancel vs refund asymmetry and the
allowed state transitions.
"""

import pytest

from vale_backend.app.core.config import settings
from vale_backend.app.core.exceptions import (
    InvalidAmountError,
    InvalidStateTransitionError,
    InvalidUserError,
    ResourceNotFoundError,
)
from vale_backend.app.domain.ledger.ledger_service import LedgerService
from vale_backend.app.domain.sales.transaction_processor import TransactionProcessor
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.models.billing_enums import TransactionStatus, PaymentMethod
from vale_backend.app.models.enums import UserRole, UserStatus, LedgerEntryKind


async def _record(db, merchant, client, amount=10000):
    return await TransactionProcessor.record_sale(
        db,
        merchant_id=merchant.id,
        client_id=client.id,
        gross_amount=amount,
        payment_method=PaymentMethod.PIX,
    )


@pytest.mark.asyncio
async def test_example_scenario_cancel_keeps_referral_commission(db_session, create_user, merchant):
    """100.00 sale, 2% cashback, 1% referral, client referred by R; then cancel."""
    referrer = await create_user(UserRole.CLIENT, name="R")
    client = await create_user(UserRole.CLIENT, name="K", referral_code=referrer.referral_code)

    sale = await _record(db_session, merchant, client, amount=10000)
    assert sale.status == TransactionStatus.PENDING
    assert sale.cashback_amount == 200
    assert await LedgerService.get_balance(db_session, client.id) == 0

    await TransactionProcessor.complete_transaction(db_session, sale.id)
    assert await LedgerService.get_balance(db_session, client.id) == 200
    assert await LedgerService.get_balance(db_session, referrer.id) == 100
    assert await LedgerService.get_balance(db_session, merchant.id) == -200

    cancelled = await TransactionProcessor.cancel_transaction(db_session, sale.id, reason="customer changed mind")
    assert cancelled.status == TransactionStatus.CANCELLED
    assert await LedgerService.get_balance(db_session, client.id) == 0
    assert await LedgerService.get_balance(db_session, referrer.id) == 100
    assert await LedgerService.get_balance(db_session, merchant.id) == 0


@pytest.mark.asyncio
async def test_refund_keeps_cashback(db_session, merchant, client_user):
    sale = await _record(db_session, merchant, client_user)
    await TransactionProcessor.complete_transaction(db_session, sale.id)

    refunded = await TransactionProcessor.refund_transaction(db_session, sale.id, reason="returned item")

    assert refunded.status == TransactionStatus.REFUNDED
    assert refunded.status_reason == "returned item"
    assert await LedgerService.get_balance(db_session, client_user.id) == 200


@pytest.mark.asyncio
async def test_cancel_pending_sale_posts_nothing(db_session, merchant, client_user):
    sale = await _record(db_session, merchant, client_user)

    await TransactionProcessor.cancel_transaction(db_session, sale.id)

    rows, total = await LedgerService.list_entries(db_session, client_user.id)
    assert total == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("path", [
    ["complete", "complete"],
    ["refund"],
    ["cancel", "complete"],
    ["complete", "refund", "cancel"],
    ["complete", "cancel", "refund"],
])
async def test_invalid_transitions(db_session, merchant, client_user, path):
    sale = await _record(db_session, merchant, client_user)
    actions = {
        "complete": TransactionProcessor.complete_transaction,
        "cancel": TransactionProcessor.cancel_transaction,
        "refund": TransactionProcessor.refund_transaction,
    }

    *valid, invalid = path
    for action in valid:
        await actions[action](db_session, sale.id)

    with pytest.raises(InvalidStateTransitionError):
        await actions[invalid](db_session, sale.id)


@pytest.mark.asyncio
async def test_completion_posts_cashback_exactly_once(db_session, merchant, client_user):
    client_id = client_user.id
    sale = await _record(db_session, merchant, client_user)
    sale_id = sale.id
    await TransactionProcessor.complete_transaction(db_session, sale_id)

    with pytest.raises(InvalidStateTransitionError):
        await TransactionProcessor.complete_transaction(db_session, sale_id)

    rows, total = await LedgerService.list_entries(db_session, client_id)
    assert total == 1
    assert rows[0][0].kind == LedgerEntryKind.SALE_CASHBACK


@pytest.mark.asyncio
async def test_zero_rounded_cashback_posts_no_entry(db_session, merchant, client_user):
    # 0.20 * 2% = 0.004 -> 0.00
    sale = await _record(db_session, merchant, client_user, amount=20)
    assert sale.cashback_amount == 0

    await TransactionProcessor.complete_transaction(db_session, sale.id)

    _, total = await LedgerService.list_entries(db_session, client_user.id)
    assert total == 0


@pytest.mark.asyncio
async def test_auto_complete_when_confirmation_disabled(db_session, merchant, client_user, monkeypatch):
    monkeypatch.setattr(settings, "sale_requires_confirmation", False)

    sale = await _record(db_session, merchant, client_user)

    assert sale.status == TransactionStatus.COMPLETED
    assert sale.completed_at is not None
    assert await LedgerService.get_balance(db_session, client_user.id) == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -100])
async def test_record_sale_rejects_non_positive_amount(db_session, merchant, client_user, amount):
    with pytest.raises(InvalidAmountError):
        await _record(db_session, merchant, client_user, amount=amount)


@pytest.mark.asyncio
async def test_record_sale_requires_roles(db_session, merchant, client_user):
    with pytest.raises(InvalidUserError):
        await _record(db_session, client_user, merchant)


@pytest.mark.asyncio
async def test_record_sale_rejects_inactive_client(db_session, admin, merchant, client_user):
    await UserService.set_status(db_session, client_user.id, UserStatus.BLOCKED, admin_id=admin.id)

    with pytest.raises(InvalidUserError):
        await _record(db_session, merchant, client_user)


@pytest.mark.asyncio
async def test_unknown_sale(db_session):
    with pytest.raises(ResourceNotFoundError):
        await TransactionProcessor.complete_transaction(db_session, 4242)


@pytest.mark.asyncio
async def test_list_transactions_filters(db_session, merchant, client_user):
    first = await _record(db_session, merchant, client_user)
    await _record(db_session, merchant, client_user, amount=5000)
    await TransactionProcessor.complete_transaction(db_session, first.id)

    completed, total = await TransactionProcessor.list_transactions(db_session, status=TransactionStatus.COMPLETED)
    assert total == 1
    assert completed[0].id == first.id

    everything, total = await TransactionProcessor.list_transactions(db_session, merchant_id=merchant.id)
    assert total == 2
