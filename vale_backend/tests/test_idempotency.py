"""
Idempotency-Key tests.
"""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from vale_backend.app.core.config import settings
from vale_backend.app.domain.ledger.ledger_service import LedgerService
from vale_backend.app.domain.payouts.transfer_service import TransferService
from vale_backend.app.domain.sales.transaction_processor import TransactionProcessor
from vale_backend.app.models.enums import UserRole
from vale_backend.app.services.idempotency import IN_PROGRESS


@pytest.mark.asyncio
async def test_repeated_sale_key_replays_response(client, db_session, merchant, client_user, mock_redis):
    payload = {
        "merchant_id": merchant.id, "client_id": client_user.id, "gross_amount": "10.00", "payment_method": "cash",
    }
    headers = {"Idempotency-Key": "sale-1"}

    first = await client.post("/v1/sales", json=payload, headers=headers)
    second = await client.post("/v1/sales", json=payload, headers=headers)

    assert first.status_code == 201
    assert second.json()["id"] == first.json()["id"]
    _, total = await TransactionProcessor.list_transactions(db_session)
    assert total == 1
    assert mock_redis.expiries[f"idempotency:sales:{merchant.id}:sale-1"] == settings.idempotency_ttl_seconds


@pytest.mark.asyncio
async def test_sales_without_key_are_distinct(client, db_session, merchant, client_user):
    payload = {
        "merchant_id": merchant.id, "client_id": client_user.id, "gross_amount": "10.00", "payment_method": "cash",
    }

    await client.post("/v1/sales", json=payload)
    await client.post("/v1/sales", json=payload)

    _, total = await TransactionProcessor.list_transactions(db_session)
    assert total == 2


@pytest.mark.asyncio
async def test_repeated_transfer_key_moves_money_once(client, db_session, create_user, client_user, fund):
    recipient = await create_user(UserRole.CLIENT, name="Recipient")
    await fund(client_user.id, 1000)
    payload = {"from_user_id": client_user.id, "to_user_id": recipient.id, "amount": 3}
    headers = {"Idempotency-Key": "t-1"}

    first = await client.post("/v1/transfers", json=payload, headers=headers)
    second = await client.post("/v1/transfers", json=payload, headers=headers)

    assert first.status_code == 201
    assert second.json() == first.json()
    assert await LedgerService.get_balance(db_session, client_user.id) == 700
    _, total = await TransferService.list_transfers(db_session, user_id=client_user.id)
    assert total == 1


@pytest.mark.asyncio
async def test_failed_request_is_not_remembered(client, client_user, create_user, fund, mock_redis):
    recipient = await create_user(UserRole.CLIENT, name="Recipient")
    payload = {"from_user_id": client_user.id, "to_user_id": recipient.id, "amount": 3}
    headers = {"Idempotency-Key": "t-2"}

    failed = await client.post("/v1/transfers", json=payload, headers=headers)
    assert failed.status_code == 409

    await fund(client_user.id, 1000)
    retried = await client.post("/v1/transfers", json=payload, headers=headers)
    assert retried.status_code == 201


@pytest.mark.asyncio
async def test_concurrent_retries_record_one_sale(client, db_session, merchant, client_user):
    payload = {
        "merchant_id": merchant.id, "client_id": client_user.id, "gross_amount": "10.00", "payment_method": "cash",
    }
    headers = {"Idempotency-Key": "same"}

    first, second = await asyncio.gather(
        client.post("/v1/sales", json=payload, headers=headers),
        client.post("/v1/sales", json=payload, headers=headers),
    )

    _, total = await TransactionProcessor.list_transactions(db_session)
    assert total == 1
    statuses = sorted([first.status_code, second.status_code])
    if statuses == [201, 201]:
        assert first.json()["id"] == second.json()["id"]
    else:
        assert statuses == [201, 409]
        conflict = first if first.status_code == 409 else second
        assert conflict.json()["error_code"] == "ERR_IDEMPOTENCY_001"


@pytest.mark.asyncio
async def test_key_in_flight_is_conflict(client, db_session, merchant, client_user, mock_redis):
    mock_redis.store[f"idempotency:sales:{merchant.id}:busy"] = IN_PROGRESS
    payload = {
        "merchant_id": merchant.id, "client_id": client_user.id, "gross_amount": "10.00", "payment_method": "cash",
    }

    response = await client.post("/v1/sales", json=payload, headers={"Idempotency-Key": "busy"})

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_IDEMPOTENCY_001"
    _, total = await TransactionProcessor.list_transactions(db_session)
    assert total == 0


@pytest.mark.asyncio
async def test_redis_down_does_not_block_requests(client, db_session, create_user, client_user, fund, mock_redis):
    recipient = await create_user(UserRole.CLIENT, name="Recipient")
    await fund(client_user.id, 1000)
    await mock_redis.aclose()

    response = await client.post(
        "/v1/transfers",
        json={"from_user_id": client_user.id, "to_user_id": recipient.id, "amount": 3},
        headers={"Idempotency-Key": "t-3"},
    )

    assert response.status_code == 201, response.text
    assert await LedgerService.get_balance(db_session, recipient.id) == 300


@pytest.mark.asyncio
async def test_store_failure_after_commit_still_returns_response(
    client, db_session, merchant, client_user, mock_redis, mocker
):
    payload = {
        "merchant_id": merchant.id, "client_id": client_user.id, "gross_amount": "10.00", "payment_method": "cash",
    }
    original_set = mock_redis.set

    async def reserve_then_fail(key, value, ex=None, nx=False):
        if nx:
            return await original_set(key, value, ex=ex, nx=nx)
        raise RedisConnectionError("lost connection")

    mocker.patch.object(mock_redis, "set", side_effect=reserve_then_fail)

    response = await client.post("/v1/sales", json=payload, headers={"Idempotency-Key": "sale-2"})

    assert response.status_code == 201
    _, total = await TransactionProcessor.list_transactions(db_session)
    assert total == 1
