"""
Referral Engine (Domain Logic).

Single-hop referral attribution. A user's referrer is the user whose code
they registered with (users.referred_by_id); only that direct referrer earns
commission on the user's completed sales.
"""

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.core.config import settings
from vale_backend.app.core.exceptions import (
    DuplicateReferralCodeError,
    InternalError,
    ResourceNotFoundError,
)
from vale_backend.app.domain.ledger.ledger_service import LedgerService
from vale_backend.app.domain.money import apply_bps
from vale_backend.app.models.enums import UserRole, LedgerEntryKind
from vale_backend.app.models.ledger_entry import LedgerEntry
from vale_backend.app.models.transaction import Transaction
from vale_backend.app.models.user import User
from vale_backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("vale.referrals")

ROLE_PREFIXES = {
    UserRole.CLIENT: "CL",
    UserRole.MERCHANT: "MR",
    UserRole.ADMIN: "AD",
}

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_code(role: UserRole, length: Optional[int] = None) -> str:
    """Random referral code such as "CL7Q2K9X" (role prefix + alphanumerics)."""
    length = length or settings.referral_code_length
    body = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))
    return f"{ROLE_PREFIXES[role]}{body}"


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass
class ReferredUser:
    id: int
    name: str
    role: UserRole
    created_at: datetime


@dataclass
class ReferralSummary:
    user_id: int
    referral_code: str
    referred_by_id: Optional[int]
    total_commission: int
    referred_users: List[ReferredUser] = field(default_factory=list)


class ReferralEngine:

    @staticmethod
    async def _claim_code(db: AsyncSession, code: str) -> str:
        result = await db.execute(select(User.id).where(User.referral_code == code))
        if result.scalar_one_or_none() is not None:
            raise DuplicateReferralCodeError(code)
        return code

    @staticmethod
    async def issue_referral_code(
        db: AsyncSession,
        role: UserRole,
        generate: Callable[[UserRole], str] = generate_code,
    ) -> str:
        """
        Generate a globally unique referral code for a new user.

        Collisions are retried with a fresh code; after
        ``referral_code_max_attempts`` collisions an InternalError is raised.
        """
        for attempt in range(1, settings.referral_code_max_attempts + 1):
            try:
                return await ReferralEngine._claim_code(db, normalize_code(generate(role)))
            except DuplicateReferralCodeError as exc:
                logger.warning("Referral code collision on attempt %s: %s", attempt, exc.details["code"])

        logger.error("Could not issue a unique referral code after %s attempts", settings.referral_code_max_attempts)
        raise InternalError("Could not issue a unique referral code")

    @staticmethod
    async def resolve_referral_code(db: AsyncSession, code: str) -> User:
        """Case-insensitive lookup of the user who owns ``code``."""
        result = await db.execute(select(User).where(User.referral_code == normalize_code(code)))
        user = result.scalar_one_or_none()
        if not user:
            raise ResourceNotFoundError("Referral code", code)
        return user

    @staticmethod
    async def resolve_referrer(db: AsyncSession, user_id: int) -> Optional[int]:
        """
        Who (if anyone) earns commission when ``user_id`` transacts.

        Primary-key lookup of the single parent pointer; never walks further up.
        """
        result = await db.execute(select(User.id, User.referred_by_id).where(User.id == user_id))
        row = result.one_or_none()
        if row is None:
            raise ResourceNotFoundError("User", user_id)
        return row.referred_by_id

    @staticmethod
    async def on_transaction_completed(db: AsyncSession, transaction: Transaction) -> Optional[LedgerEntry]:
        """
        Credit the client's referrer with commission for a completed sale.

        Uses the referral rate captured on the sale. No referrer, or a
        commission that rounds to zero, is a no-op. Called inside the sale's
        completion unit of work; posts at most one commission per sale.

        Returns:
            The referral_commission entry, or None
        """
        referrer_id = await ReferralEngine.resolve_referrer(db, transaction.client_id)
        if referrer_id is None:
            return None

        existing = await LedgerService.find_entry(db, LedgerEntryKind.REFERRAL_COMMISSION, transaction.id)
        if existing:
            return existing

        commission = apply_bps(transaction.gross_amount, transaction.referral_commission_rate_bps)
        if commission <= 0:
            logger.info("Referral commission for sale %s rounds to zero, nothing posted", transaction.id)
            return None

        entry = await LedgerService.post_entry(
            db,
            user_id=referrer_id,
            kind=LedgerEntryKind.REFERRAL_COMMISSION,
            amount=commission,
            related_transaction_id=transaction.id,
            description=f"Referral commission: sale {transaction.id} by user {transaction.client_id}",
        )

        await log_event(
            db,
            action=AuditAction.REFERRAL_COMMISSION_POSTED,
            entity_type="transaction",
            entity_id=transaction.id,
            metadata={"referrer_id": referrer_id, "entry_id": entry.id, "amount": commission},
        )
        return entry

    @staticmethod
    async def referral_summary(db: AsyncSession, user_id: int) -> ReferralSummary:
        """The user's code, the users they referred and the commission earned."""
        user = await db.get(User, user_id)
        if not user:
            raise ResourceNotFoundError("User", user_id)

        referred = await db.execute(
            select(User).where(User.referred_by_id == user_id).order_by(User.created_at.desc(), User.id.desc())
        )
        total = await db.execute(
            select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
                LedgerEntry.user_id == user_id,
                LedgerEntry.kind == LedgerEntryKind.REFERRAL_COMMISSION,
            )
        )

        return ReferralSummary(
            user_id=user.id,
            referral_code=user.referral_code,
            referred_by_id=user.referred_by_id,
            total_commission=int(total.scalar()),
            referred_users=[
                ReferredUser(id=u.id, name=u.name, role=u.role, created_at=u.created_at)
                for u in referred.scalars().all()
            ],
        )
