"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from vale_backend.app.api.v1.endpoints import (
    users, sales, ledger, transfers, withdrawals, admin
)

router = APIRouter()

router.include_router(users.router)
router.include_router(sales.router)
router.include_router(ledger.router)
router.include_router(transfers.router)
router.include_router(withdrawals.router)
router.include_router(admin.router)
