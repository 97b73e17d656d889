"""
Commission Rate Resolver.

Responsible for determining the rate version applicable to a new sale.
Rate versions are insert-only: the newest row is in effect, and each sale
keeps a reference to the version it was priced with.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from vale_backend.app.core.config import settings
from vale_backend.app.core.exceptions import InvalidAmountError
from vale_backend.app.db.session import atomic
from vale_backend.app.domain.money import percent_to_bps, to_minor_units, RateInput, AmountInput
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.models.commission_setting import CommissionSetting
from vale_backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("vale.rates")


class RateResolver:

    @staticmethod
    async def current(db: AsyncSession) -> Optional[CommissionSetting]:
        result = await db.execute(
            select(CommissionSetting).order_by(desc(CommissionSetting.id)).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def resolve_active(db: AsyncSession) -> CommissionSetting:
        """
        Find the rate version currently in effect.

        When no version exists yet, the defaults from configuration are
        written as version 1 inside the caller's unit of work.
        """
        setting = await RateResolver.current(db)
        if setting:
            return setting

        setting = CommissionSetting(
            cashback_rate_bps=percent_to_bps(settings.default_cashback_rate),
            referral_commission_rate_bps=percent_to_bps(settings.default_referral_commission_rate),
            platform_fee_rate_bps=percent_to_bps(settings.default_platform_fee_rate),
            min_withdrawal_amount=to_minor_units(settings.default_min_withdrawal),
            created_by_id=None,
        )
        db.add(setting)
        await db.flush()

        await log_event(
            db,
            action=AuditAction.RATES_SEEDED,
            entity_type="commission_setting",
            entity_id=setting.id,
        )
        logger.info("Seeded default commission settings as version %s", setting.id)
        return setting

    @staticmethod
    async def create_version(
        db: AsyncSession,
        admin_id: int,
        cashback_rate: RateInput,
        referral_commission_rate: RateInput,
        platform_fee_rate: RateInput,
        min_withdrawal: AmountInput,
    ) -> CommissionSetting:
        """
        Publish a new rate version. Existing sales keep their captured rates.

        Raises:
            InsufficientPermissionsError: admin_id is not an active admin
            InvalidAmountError: rate outside 0-100% or non-positive minimum
        """
        async with atomic(db):
            await UserService.require_admin(db, admin_id)

            min_withdrawal_amount = to_minor_units(min_withdrawal)
            if min_withdrawal_amount <= 0:
                raise InvalidAmountError("Minimum withdrawal must be positive")

            setting = CommissionSetting(
                cashback_rate_bps=percent_to_bps(cashback_rate),
                referral_commission_rate_bps=percent_to_bps(referral_commission_rate),
                platform_fee_rate_bps=percent_to_bps(platform_fee_rate),
                min_withdrawal_amount=min_withdrawal_amount,
                created_by_id=admin_id,
            )
            db.add(setting)
            await db.flush()

            await log_event(
                db,
                action=AuditAction.RATES_UPDATED,
                actor_id=admin_id,
                entity_type="commission_setting",
                entity_id=setting.id,
                metadata={
                    "cashback_rate_bps": setting.cashback_rate_bps,
                    "referral_commission_rate_bps": setting.referral_commission_rate_bps,
                    "platform_fee_rate_bps": setting.platform_fee_rate_bps,
                    "min_withdrawal_amount": setting.min_withdrawal_amount,
                },
            )

        logger.info("Admin %s published commission settings version %s", admin_id, setting.id)
        return setting

    @staticmethod
    async def list_versions(db: AsyncSession, limit: int = 50) -> List[CommissionSetting]:
        result = await db.execute(
            select(CommissionSetting).order_by(desc(CommissionSetting.id)).limit(limit)
        )
        return list(result.scalars().all())
