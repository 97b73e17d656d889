"""
Commission rate versioning tests.
"""

from decimal import Decimal

import pytest

from vale_backend.app.core.exceptions import InsufficientPermissionsError, InvalidAmountError
from vale_backend.app.domain.ledger.ledger_service import LedgerService
from vale_backend.app.domain.sales.rate_resolver import RateResolver
from vale_backend.app.domain.sales.transaction_processor import TransactionProcessor
from vale_backend.app.models.billing_enums import PaymentMethod
from vale_backend.app.models.enums import UserRole


@pytest.mark.asyncio
async def test_defaults_seeded_on_first_use(db_session):
    assert await RateResolver.current(db_session) is None

    setting = await RateResolver.resolve_active(db_session)

    assert setting.cashback_rate == Decimal("2.00")
    assert setting.referral_commission_rate == Decimal("1.00")
    assert setting.platform_fee_rate == Decimal("2.00")
    assert setting.min_withdrawal_amount == 5000


@pytest.mark.asyncio
async def test_new_version_does_not_reprice_existing_sales(db_session, admin, create_user, merchant):
    referrer = await create_user(name="Referrer")
    client = await create_user(name="Client", referral_code=referrer.referral_code)

    sale = await TransactionProcessor.record_sale(
        db_session, merchant_id=merchant.id, client_id=client.id, gross_amount=10000,
        payment_method=PaymentMethod.CREDIT_CARD,
    )
    await RateResolver.create_version(
        db_session, admin_id=admin.id, cashback_rate="10", referral_commission_rate="5",
        platform_fee_rate="3", min_withdrawal="20.00",
    )
    await TransactionProcessor.complete_transaction(db_session, sale.id)

    assert sale.cashback_rate == Decimal("2.00")
    assert await LedgerService.get_balance(db_session, client.id) == 200
    assert await LedgerService.get_balance(db_session, referrer.id) == 100

    later = await TransactionProcessor.record_sale(
        db_session, merchant_id=merchant.id, client_id=client.id, gross_amount=10000,
        payment_method=PaymentMethod.CREDIT_CARD,
    )
    assert later.cashback_amount == 1000
    assert later.settings_version_id != sale.settings_version_id


@pytest.mark.asyncio
async def test_versions_are_kept(db_session, admin):
    await RateResolver.resolve_active(db_session)
    await RateResolver.create_version(
        db_session, admin_id=admin.id, cashback_rate="3", referral_commission_rate="1",
        platform_fee_rate="2", min_withdrawal="50",
    )

    versions = await RateResolver.list_versions(db_session)

    assert len(versions) == 2
    assert versions[0].cashback_rate_bps == 300
    assert versions[0].created_by_id == admin.id


@pytest.mark.asyncio
async def test_only_admin_changes_rates(db_session, create_user):
    merchant = await create_user(UserRole.MERCHANT)
    with pytest.raises(InsufficientPermissionsError):
        await RateResolver.create_version(
            db_session, admin_id=merchant.id, cashback_rate="3", referral_commission_rate="1",
            platform_fee_rate="2", min_withdrawal="50",
        )


@pytest.mark.asyncio
@pytest.mark.parametrize("rates", [
    {"cashback_rate": "101"},
    {"referral_commission_rate": "-1"},
    {"min_withdrawal": "0"},
])
async def test_rate_validation(db_session, admin, rates):
    values = {
        "cashback_rate": "2", "referral_commission_rate": "1", "platform_fee_rate": "2", "min_withdrawal": "50",
    }
    values.update(rates)
    with pytest.raises(InvalidAmountError):
        await RateResolver.create_version(db_session, admin_id=admin.id, **values)
