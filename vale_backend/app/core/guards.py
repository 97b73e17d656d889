"""
Access guards for admin endpoints.

Authentication is outside this service; the gateway in front of it forwards
the acting admin's user ID in the ``X-Admin-Id`` header. The guard checks that
this user exists, is an ADMIN and is active.
"""

from typing import Optional
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
from vale_backend.app.core.exceptions import InsufficientPermissionsError
from vale_backend.app.db.session import get_db
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.models.user import User


async def require_admin(
    x_admin_id: Optional[int] = Header(None, alias="X-Admin-Id"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency for admin-only endpoints.

    Usage:
        @router.post("/admin/users/{user_id}/status")
        async def set_status(user_id: int, admin: User = Depends(require_admin)):
            ...

    Raises:
        InsufficientPermissionsError: header missing, or not an active admin
    """
    if x_admin_id is None:
        raise InsufficientPermissionsError("X-Admin-Id header is required")
    return await UserService.require_admin(db, x_admin_id)
