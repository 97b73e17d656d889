"""
Custom exceptions and error handlers for consistent error responses.

Every ledger, sale, transfer and withdrawal failure is raised as a specific
AppException subclass carrying a stable error code. Global handlers render
them as {"error_code", "message", "details"}.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("vale.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class InvalidAmountError(AppException):
    """Raised for zero, negative, malformed or out-of-range amounts."""

    def __init__(self, message: str = "Invalid amount", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_AMOUNT_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InsufficientFundsError(AppException):
    """Raised when a debit exceeds the user's available balance."""

    def __init__(self, user_id: int, requested: int, available: int):
        super().__init__(
            message=f"Insufficient funds for user {user_id}",
            error_code="ERR_FUNDS_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"user_id": user_id, "requested": requested, "available": available}
        )


class InvalidStateTransitionError(AppException):
    """Raised when a status change is not permitted from the current state."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            message=f"Cannot move {entity} from {current} to {target}",
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"entity": entity, "current": current, "target": target}
        )


class AlreadyReversedError(AppException):
    """Raised when reversing a ledger entry that already has a reversal."""

    def __init__(self, entry_id: int):
        super().__init__(
            message=f"Ledger entry {entry_id} has already been reversed",
            error_code="ERR_LEDGER_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"entry_id": entry_id}
        )


class InvalidUserError(AppException):
    """Raised when a referenced user has the wrong role or is not active."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_USER_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class DuplicateUserError(AppException):
    """Raised when registering an email that is already in use."""

    def __init__(self, email: str):
        super().__init__(
            message="Email already registered",
            error_code="ERR_USER_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"email": email}
        )


class DuplicateReferralCodeError(AppException):
    """Internal: a generated referral code collided. Retried, never surfaced."""

    def __init__(self, code: str):
        super().__init__(
            message=f"Referral code {code} already issued",
            error_code="ERR_REFERRAL_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"code": code}
        )


class IdempotencyConflictError(AppException):
    """Raised when a request with the same Idempotency-Key is still in flight."""

    def __init__(self, key: str):
        super().__init__(
            message="A request with this Idempotency-Key is already in progress",
            error_code="ERR_IDEMPOTENCY_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"idempotency_key": key}
        )


class InternalError(AppException):
    """Raised when an internal retry budget is exhausted."""

    def __init__(self, message: str = "Internal error"):
        super().__init__(
            message=message,
            error_code="ERR_INTERNAL_001",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raw exception object, which is not JSON serializable
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
