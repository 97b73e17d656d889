"""
FastAPI Application Entry Point.

This is the main application file for the Vale Cashback Ledger backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from vale_backend.app.core.config import settings
from vale_backend.app.api.v1.router import router as api_v1_router
from vale_backend.app.db.session import engine, Base
from vale_backend.app.core.observability import configure_logging, ObservabilityMiddleware
from vale_backend.app.core.redis_client import ping_redis, close_redis
from vale_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from vale_backend.app.models.user import User
from vale_backend.app.models.commission_setting import CommissionSetting
from vale_backend.app.models.transaction import Transaction
from vale_backend.app.models.transfer import Transfer
from vale_backend.app.models.withdrawal import WithdrawalRequest
from vale_backend.app.models.ledger_entry import LedgerEntry
from vale_backend.app.models.audit_log import AuditLog

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Releases Redis connections on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_redis()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Cashback and referral ledger for merchants and their clients",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and Redis reachability
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "ok" if redis_ok else "unavailable",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to the Vale Cashback Ledger API",
        "docs": "/docs",
        "health": "/health",
    }
