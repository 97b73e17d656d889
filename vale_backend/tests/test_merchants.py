"""
Merchant store tests: approval gate and per-merchant platform fee.
"""

from decimal import Decimal

import pytest

from vale_backend.app.core.config import settings
from vale_backend.app.core.exceptions import InsufficientPermissionsError, InvalidUserError
from vale_backend.app.domain.ledger.ledger_service import LedgerService
from vale_backend.app.domain.sales.transaction_processor import TransactionProcessor
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.models.billing_enums import PaymentMethod
from vale_backend.app.models.enums import UserRole
from vale_backend.app.services.audit import AuditAction, get_audit_trail


async def _record(db, merchant_id, client_id, amount=10000):
    return await TransactionProcessor.record_sale(
        db,
        merchant_id=merchant_id,
        client_id=client_id,
        gross_amount=amount,
        payment_method=PaymentMethod.DEBIT_CARD,
    )


@pytest.mark.asyncio
async def test_registered_merchant_starts_unapproved(db_session):
    merchant = await UserService.register_user(db_session, "Store", "store@test.com", UserRole.MERCHANT)
    client = await UserService.register_user(db_session, "Kai", "kai@test.com")

    assert merchant.approved is False
    assert client.approved is True


@pytest.mark.asyncio
async def test_approval_can_be_switched_off(db_session, monkeypatch):
    monkeypatch.setattr(settings, "merchant_requires_approval", False)
    merchant = await UserService.register_user(db_session, "Store", "store@test.com", UserRole.MERCHANT)
    assert merchant.approved is True


@pytest.mark.asyncio
async def test_unapproved_merchant_cannot_record_sales(db_session, create_user, admin, client_user):
    merchant = await create_user(UserRole.MERCHANT, approved=False)
    merchant_id, client_id, admin_id = merchant.id, client_user.id, admin.id

    with pytest.raises(InvalidUserError) as exc_info:
        await _record(db_session, merchant_id, client_id)
    assert exc_info.value.details["approved"] is False

    approved = await UserService.set_merchant_approval(db_session, merchant_id, True, admin_id=admin_id)
    assert approved.approved is True

    sale = await _record(db_session, merchant_id, client_id)
    assert sale.merchant_id == merchant_id

    logs, total = await get_audit_trail(db_session, action=AuditAction.MERCHANT_APPROVED)
    assert total == 1
    assert logs[0].entity_id == merchant_id


@pytest.mark.asyncio
async def test_withdrawn_approval_blocks_new_sales(db_session, admin, merchant, client_user):
    merchant_id, client_id = merchant.id, client_user.id
    await UserService.set_merchant_approval(db_session, merchant_id, False, admin_id=admin.id)

    with pytest.raises(InvalidUserError):
        await _record(db_session, merchant_id, client_id)


@pytest.mark.asyncio
async def test_only_admin_approves_merchants(db_session, create_user, client_user):
    merchant = await create_user(UserRole.MERCHANT, approved=False)
    merchant_id, client_id = merchant.id, client_user.id

    with pytest.raises(InsufficientPermissionsError):
        await UserService.set_merchant_approval(db_session, merchant_id, True, admin_id=client_id)


@pytest.mark.asyncio
async def test_approval_applies_to_merchants_only(db_session, admin, client_user):
    with pytest.raises(InvalidUserError):
        await UserService.set_merchant_approval(db_session, client_user.id, True, admin_id=admin.id)


@pytest.mark.asyncio
async def test_merchant_fee_rate_overrides_active_rate(db_session, admin, merchant, client_user):
    updated = await UserService.set_merchant_fee_rate(db_session, merchant.id, "1.5", admin_id=admin.id)
    assert updated.platform_fee_rate_bps == 150
    assert updated.platform_fee_rate == Decimal("1.50")

    sale = await _record(db_session, merchant.id, client_user.id)
    assert sale.platform_fee_rate_bps == 150
    assert sale.platform_fee_amount == 150

    await TransactionProcessor.complete_transaction(db_session, sale.id)
    assert await LedgerService.get_balance(db_session, merchant.id) == -150

    # clearing falls back to the active rate; the recorded sale keeps its capture
    await UserService.set_merchant_fee_rate(db_session, merchant.id, None, admin_id=admin.id)
    second = await _record(db_session, merchant.id, client_user.id)
    assert second.platform_fee_rate_bps == 200
    assert sale.platform_fee_rate_bps == 150


@pytest.mark.asyncio
async def test_merchant_endpoints_over_http(client, admin, create_user):
    merchant = await create_user(UserRole.MERCHANT, approved=False)
    buyer = await create_user(UserRole.CLIENT)
    headers = {"X-Admin-Id": str(admin.id)}
    sale = {"merchant_id": merchant.id, "client_id": buyer.id, "gross_amount": "100.00", "payment_method": "cash"}

    response = await client.post("/v1/sales", json=sale)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_USER_001"

    response = await client.post(
        f"/v1/admin/merchants/{merchant.id}/approval", json={"approved": True}, headers={"X-Admin-Id": str(buyer.id)}
    )
    assert response.status_code == 403

    response = await client.post(f"/v1/admin/merchants/{merchant.id}/approval", json={"approved": True}, headers=headers)
    assert response.status_code == 200
    assert response.json()["approved"] is True

    response = await client.post(
        f"/v1/admin/merchants/{merchant.id}/fee-rate", json={"platform_fee_rate": "1"}, headers=headers
    )
    assert response.status_code == 200
    assert Decimal(response.json()["platform_fee_rate"]) == Decimal("1")

    response = await client.post("/v1/sales", json=sale)
    assert response.status_code == 201
    assert response.json()["platform_fee_amount"] == 100
