"""
Pre-Deploy and Smoke Test Script.

Runs the application in-process with TestClient against the configured
database and executes a full smoke test:
1. Health Check
2. Register merchant, referrer and referred client
3. Sale -> Completion -> Balance and Commission Verification
4. Cancellation -> Cashback reversed, commission retained

When merchants require approval, set SMOKE_ADMIN_ID to the ID of an active
admin (seed_users.py prints it) so the smoke merchant can be approved.
"""

import os
import sys
import uuid

from fastapi.testclient import TestClient
from vale_backend.app.main import app


def print_step(step, msg):
    print(f"[{step}] {msg}")


def fail(msg):
    print(f"❌ FAILURE: {msg}")
    sys.exit(1)


def success(msg):
    print(f"✅ {msg}")


def expect(response, status_code):
    if response.status_code != status_code:
        fail(f"{response.request.method} {response.request.url} -> {response.status_code}: {response.text}")
    return response.json()


def balance(client, user_id):
    return expect(client.get(f"/v1/balance/{user_id}"), 200)["cashback_balance"]


def main():
    print("🚀 Starting Deployment Validation...")
    run = uuid.uuid4().hex[:8]

    with TestClient(app) as client:
        # 1. Health Check
        print_step("PRE-DEPLOY", "Checking /health...")
        health = expect(client.get("/health"), 200)
        if health["redis"] != "ok":
            print_step("PRE-DEPLOY", "Redis unavailable, idempotency keys will not be honoured")
        success(f"Health: {health['status']}")

        # 2. Users
        print_step("SMOKE", "Registering users...")
        merchant = expect(client.post("/v1/users", json={
            "name": "Smoke Store", "email": f"store-{run}@vale.com", "role": "merchant",
        }), 201)
        referrer = expect(client.post("/v1/users", json={
            "name": "Smoke Referrer", "email": f"ref-{run}@vale.com",
        }), 201)
        buyer = expect(client.post("/v1/users", json={
            "name": "Smoke Client", "email": f"client-{run}@vale.com", "referral_code": referrer["referral_code"],
        }), 201)
        success(f"Users {merchant['id']}, {referrer['id']}, {buyer['id']}")

        if not merchant["approved"]:
            admin_id = os.getenv("SMOKE_ADMIN_ID")
            if not admin_id:
                fail("Merchant needs approval: set SMOKE_ADMIN_ID to an admin user ID")
            print_step("SMOKE", "Approving merchant...")
            expect(client.post(
                f"/v1/admin/merchants/{merchant['id']}/approval",
                json={"approved": True}, headers={"X-Admin-Id": admin_id},
            ), 200)

        # 3. Sale -> completion
        print_step("SMOKE", "Recording and completing a 100.00 sale...")
        sale = expect(client.post("/v1/sales", json={
            "merchant_id": merchant["id"], "client_id": buyer["id"], "gross_amount": "100.00",
            "payment_method": "pix",
        }), 201)
        if sale["status"] == "pending":
            expect(client.post(f"/v1/sales/{sale['id']}/complete"), 200)

        cashback, commission = balance(client, buyer["id"]), balance(client, referrer["id"])
        if cashback != sale["cashback_amount"]:
            fail(f"Client cashback {cashback}, expected {sale['cashback_amount']}")
        success(f"Cashback {cashback}, referral commission {commission}")

        # 4. Cancellation
        print_step("SMOKE", "Cancelling the sale...")
        expect(client.post(f"/v1/sales/{sale['id']}/cancel", json={"reason": "smoke test"}), 200)
        if balance(client, buyer["id"]) != 0:
            fail("Cashback was not reversed on cancellation")
        if balance(client, referrer["id"]) != commission:
            fail("Referral commission changed on cancellation")
        success("Cancellation reversed cashback and kept commission")

    print("🎉 Deployment validation passed")


if __name__ == "__main__":
    main()
