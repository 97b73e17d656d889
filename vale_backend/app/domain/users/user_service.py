"""
User registration and administration (Domain Logic).
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.core.config import settings
from vale_backend.app.core.exceptions import (
    DuplicateUserError,
    InsufficientPermissionsError,
    InvalidUserError,
    ResourceNotFoundError,
)
from vale_backend.app.db.session import atomic
from vale_backend.app.domain.money import percent_to_bps
from vale_backend.app.domain.referrals.referral_engine import ReferralEngine
from vale_backend.app.models.enums import UserRole, UserStatus
from vale_backend.app.models.user import User
from vale_backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("vale.users")


class UserService:

    @staticmethod
    async def register_user(
        db: AsyncSession,
        name: str,
        email: str,
        role: UserRole = UserRole.CLIENT,
        referral_code: Optional[str] = None,
        allow_admin: bool = False,
        approved: Optional[bool] = None,
    ) -> User:
        """
        Register a new user.

        - ADMIN accounts cannot be self-registered (allow_admin is for seeding).
        - The optional referral code is resolved once, here, to referred_by_id.
        - A unique referral code is issued for the new user.
        - Merchants start unapproved while MERCHANT_REQUIRES_APPROVAL is on;
          ``approved`` overrides that (seeding).

        Raises:
            InsufficientPermissionsError: admin registration without allow_admin
            DuplicateUserError: email already registered
            ResourceNotFoundError: unknown referral code
        """
        if role == UserRole.ADMIN and not allow_admin:
            raise InsufficientPermissionsError("Admin users cannot be registered via API")

        email = email.strip().lower()
        if approved is None:
            approved = role != UserRole.MERCHANT or not settings.merchant_requires_approval

        async with atomic(db):
            existing = await db.execute(select(User.id).where(User.email == email))
            if existing.scalar_one_or_none() is not None:
                raise DuplicateUserError(email)

            referred_by_id = None
            if referral_code:
                referrer = await ReferralEngine.resolve_referral_code(db, referral_code)
                referred_by_id = referrer.id

            user = User(
                name=name.strip(),
                email=email,
                role=role,
                status=UserStatus.ACTIVE,
                approved=approved,
                referral_code=await ReferralEngine.issue_referral_code(db, role),
                referred_by_id=referred_by_id,
            )
            db.add(user)
            await db.flush()

            await log_event(
                db,
                action=AuditAction.USER_REGISTERED,
                actor_id=user.id,
                entity_type="user",
                entity_id=user.id,
                metadata={"role": role.value, "referred_by_id": referred_by_id},
            )

        logger.info("Registered %s user %s (referred_by=%s)", role.value, user.id, referred_by_id)
        return user

    @staticmethod
    async def get_user(db: AsyncSession, user_id: int) -> User:
        user = await db.get(User, user_id)
        if not user:
            raise ResourceNotFoundError("User", user_id)
        return user

    @staticmethod
    def check_user(user: Optional[User], user_id: int, role: Optional[UserRole] = None, label: str = "User") -> User:
        """
        Validate a loaded user: it exists, has ``role`` (when given) and is active.

        Raises:
            ResourceNotFoundError: user is None
            InvalidUserError: wrong role or not active
        """
        if user is None:
            raise ResourceNotFoundError(label, user_id)
        if role is not None and user.role != role:
            raise InvalidUserError(
                f"{label} {user_id} is not a {role.value}",
                details={"user_id": user_id, "role": user.role.value},
            )
        if not user.is_active:
            raise InvalidUserError(
                f"{label} {user_id} is not active",
                details={"user_id": user_id, "status": user.status.value},
            )
        return user

    @staticmethod
    async def require_user(
        db: AsyncSession,
        user_id: int,
        role: Optional[UserRole] = None,
        label: str = "User",
    ) -> User:
        return UserService.check_user(await db.get(User, user_id), user_id, role, label)

    @staticmethod
    async def require_admin(db: AsyncSession, admin_id: int) -> User:
        """
        Raises:
            InsufficientPermissionsError: admin_id is missing, not an admin or not active
        """
        admin = await db.get(User, admin_id)
        if not admin or admin.role != UserRole.ADMIN or not admin.is_active:
            raise InsufficientPermissionsError(
                "Action requires an active admin", details={"user_id": admin_id}
            )
        return admin

    @staticmethod
    async def set_status(db: AsyncSession, user_id: int, status: UserStatus, admin_id: int) -> User:
        """Admin changes a user's status. Referral links are not touched."""
        async with atomic(db):
            await UserService.require_admin(db, admin_id)
            if user_id == admin_id:
                raise InvalidUserError("Admins cannot change their own status")

            user = await UserService.get_user(db, user_id)
            previous = user.status
            user.status = status
            await db.flush()

            await log_event(
                db,
                action=AuditAction.USER_STATUS_CHANGED,
                actor_id=admin_id,
                entity_type="user",
                entity_id=user_id,
                metadata={"from": previous.value, "to": status.value},
            )

        logger.info("Admin %s changed user %s status %s -> %s", admin_id, user_id, previous.value, status.value)
        return user

    @staticmethod
    async def set_merchant_approval(db: AsyncSession, merchant_id: int, approved: bool, admin_id: int) -> User:
        """
        Admin approves or suspends a merchant store.

        Raises:
            InsufficientPermissionsError: admin_id is not an active admin
            ResourceNotFoundError: unknown user
            InvalidUserError: user is not a merchant
        """
        async with atomic(db):
            await UserService.require_admin(db, admin_id)
            merchant = await UserService.get_user(db, merchant_id)
            if merchant.role != UserRole.MERCHANT:
                raise InvalidUserError(
                    f"User {merchant_id} is not a merchant",
                    details={"user_id": merchant_id, "role": merchant.role.value},
                )
            merchant.approved = approved
            await db.flush()

            await log_event(
                db,
                action=AuditAction.MERCHANT_APPROVED if approved else AuditAction.MERCHANT_REJECTED,
                actor_id=admin_id,
                entity_type="user",
                entity_id=merchant_id,
                metadata={"approved": approved},
            )

        logger.info("Admin %s set merchant %s approved=%s", admin_id, merchant_id, approved)
        return merchant

    @staticmethod
    async def set_merchant_fee_rate(db: AsyncSession, merchant_id: int, rate_percent, admin_id: int) -> User:
        """
        Set (or clear, with None) a merchant's own platform fee rate.

        Sales already recorded keep the rate they captured.
        """
        rate_bps = None if rate_percent is None else percent_to_bps(rate_percent)

        async with atomic(db):
            await UserService.require_admin(db, admin_id)
            merchant = await UserService.get_user(db, merchant_id)
            if merchant.role != UserRole.MERCHANT:
                raise InvalidUserError(
                    f"User {merchant_id} is not a merchant",
                    details={"user_id": merchant_id, "role": merchant.role.value},
                )
            previous = merchant.platform_fee_rate_bps
            merchant.platform_fee_rate_bps = rate_bps
            await db.flush()

            await log_event(
                db,
                action=AuditAction.MERCHANT_FEE_RATE_CHANGED,
                actor_id=admin_id,
                entity_type="user",
                entity_id=merchant_id,
                metadata={"from_bps": previous, "to_bps": rate_bps},
            )

        return merchant

    @staticmethod
    async def list_users(
        db: AsyncSession,
        role: Optional[UserRole] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[User], int]:
        query = select(User)
        count_query = select(func.count(User.id))
        if role:
            query = query.where(User.role == role)
            count_query = count_query.where(User.role == role)

        total = (await db.execute(count_query)).scalar()
        result = await db.execute(
            query.order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total
