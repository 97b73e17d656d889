"""
Peer-to-peer transfer tests.
"""

import pytest

from vale_backend.app.core.config import settings
from vale_backend.app.core.exceptions import (
    InsufficientFundsError,
    InsufficientPermissionsError,
    InvalidAmountError,
    InvalidStateTransitionError,
    InvalidUserError,
)
from vale_backend.app.domain.ledger.ledger_service import LedgerService
from vale_backend.app.domain.payouts.transfer_service import TransferService
from vale_backend.app.models.billing_enums import TransferStatus
from vale_backend.app.models.enums import UserRole, LedgerEntryKind


@pytest.fixture
async def recipient(create_user):
    return await create_user(UserRole.CLIENT, name="Recipient")


@pytest.mark.asyncio
async def test_transfer_moves_balance(db_session, client_user, recipient, fund):
    await fund(client_user.id, 1000)

    transfer = await TransferService.initiate_transfer(db_session, client_user.id, recipient.id, 400)

    assert transfer.status == TransferStatus.COMPLETED
    assert await LedgerService.get_balance(db_session, client_user.id) == 600
    assert await LedgerService.get_balance(db_session, recipient.id) == 400

    rows, _ = await LedgerService.list_entries(db_session, recipient.id)
    assert rows[0][0].kind == LedgerEntryKind.TRANSFER_IN
    assert rows[0][0].related_transfer_id == transfer.id


@pytest.mark.asyncio
async def test_transfer_cannot_exceed_balance(db_session, client_user, recipient, fund):
    sender_id, recipient_id = client_user.id, recipient.id
    await fund(sender_id, 300)

    with pytest.raises(InsufficientFundsError):
        await TransferService.initiate_transfer(db_session, sender_id, recipient_id, 301)

    assert await LedgerService.get_balance(db_session, sender_id) == 300
    assert await LedgerService.get_balance(db_session, recipient_id) == 0
    transfers, total = await TransferService.list_transfers(db_session, user_id=sender_id)
    assert total == 0


@pytest.mark.asyncio
async def test_self_transfer_rejected(db_session, client_user, fund):
    await fund(client_user.id, 300)
    with pytest.raises(InvalidUserError):
        await TransferService.initiate_transfer(db_session, client_user.id, client_user.id, 100)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5])
async def test_non_positive_transfer_rejected(db_session, client_user, recipient, amount):
    with pytest.raises(InvalidAmountError):
        await TransferService.initiate_transfer(db_session, client_user.id, recipient.id, amount)


@pytest.mark.asyncio
async def test_pending_transfer_reserves_until_approved(db_session, admin, client_user, recipient, fund, monkeypatch):
    monkeypatch.setattr(settings, "transfer_requires_approval", True)
    admin_id, sender_id, recipient_id = admin.id, client_user.id, recipient.id
    await fund(sender_id, 1000)

    transfer = await TransferService.initiate_transfer(db_session, sender_id, recipient_id, 700)
    transfer_id = transfer.id
    assert transfer.status == TransferStatus.PENDING

    snapshot = await LedgerService.balance_snapshot(db_session, sender_id)
    assert snapshot.cashback_balance == 1000
    assert snapshot.pending_balance == 700
    assert snapshot.available_balance == 300

    with pytest.raises(InsufficientFundsError):
        await TransferService.initiate_transfer(db_session, sender_id, recipient_id, 301)

    resolved = await TransferService.resolve_transfer(
        db_session, transfer_id, TransferStatus.COMPLETED, admin_id=admin_id, notes="ok"
    )
    assert resolved.status == TransferStatus.COMPLETED
    assert resolved.resolved_by_id == admin_id
    assert await LedgerService.get_balance(db_session, sender_id) == 300
    assert await LedgerService.get_balance(db_session, recipient_id) == 700
    assert await LedgerService.get_pending_balance(db_session, sender_id) == 0


@pytest.mark.asyncio
async def test_cancelled_transfer_releases_reservation(db_session, admin, client_user, recipient, fund, monkeypatch):
    monkeypatch.setattr(settings, "transfer_requires_approval", True)
    await fund(client_user.id, 1000)
    transfer = await TransferService.initiate_transfer(db_session, client_user.id, recipient.id, 700)

    await TransferService.resolve_transfer(db_session, transfer.id, TransferStatus.CANCELLED, admin_id=admin.id)

    assert await LedgerService.get_available_balance(db_session, client_user.id) == 1000
    assert await LedgerService.get_balance(db_session, recipient.id) == 0

    with pytest.raises(InvalidStateTransitionError):
        await TransferService.resolve_transfer(db_session, transfer.id, TransferStatus.COMPLETED, admin_id=admin.id)


@pytest.mark.asyncio
async def test_only_admin_resolves_transfers(db_session, client_user, recipient, fund, monkeypatch):
    monkeypatch.setattr(settings, "transfer_requires_approval", True)
    await fund(client_user.id, 1000)
    transfer = await TransferService.initiate_transfer(db_session, client_user.id, recipient.id, 100)

    with pytest.raises(InsufficientPermissionsError):
        await TransferService.resolve_transfer(
            db_session, transfer.id, TransferStatus.COMPLETED, admin_id=client_user.id
        )
