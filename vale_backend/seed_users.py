"""
Database seeding script for initial users.

Creates an ADMIN, a MERCHANT and two CLIENT users (one referred by the other)
plus the default commission settings, for development.
Run this script after database is set up but before first use.
"""

import asyncio

from sqlalchemy import select

from vale_backend.app.db.session import AsyncSessionLocal, engine, Base
from vale_backend.app.domain.sales.rate_resolver import RateResolver
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.models.enums import UserRole
from vale_backend.app.models.user import User


async def seed_users():
    """
    Seed initial users with different roles.

    Creates:
    - 1 ADMIN user
    - 1 MERCHANT user, approved by the admin
    - 2 CLIENT users, the second referred by the first
    - commission settings version 1 from configuration defaults
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting user seeding...")

        result = await db.execute(select(User).where(User.email == "admin@vale.com"))
        if result.scalar_one_or_none():
            print("ℹ️  ADMIN user already exists, skipping seeding")
            return

        admin = await UserService.register_user(
            db, "Vale Admin", "admin@vale.com", UserRole.ADMIN, allow_admin=True
        )
        print(f"✅ Created ADMIN user (id: {admin.id})")

        merchant = await UserService.register_user(db, "Demo Store", "store@vale.com", UserRole.MERCHANT)
        merchant = await UserService.set_merchant_approval(db, merchant.id, True, admin_id=admin.id)
        print(f"✅ Created MERCHANT user (id: {merchant.id}, code: {merchant.referral_code})")

        referrer = await UserService.register_user(db, "Rita Referrer", "rita@vale.com", UserRole.CLIENT)
        print(f"✅ Created CLIENT user (id: {referrer.id}, code: {referrer.referral_code})")

        client = await UserService.register_user(
            db, "Kai Client", "kai@vale.com", UserRole.CLIENT, referral_code=referrer.referral_code
        )
        print(f"✅ Created CLIENT user (id: {client.id}) referred by {referrer.id}")

        setting = await RateResolver.resolve_active(db)
        await db.commit()
        print(
            f"✅ Commission settings v{setting.id}: cashback {setting.cashback_rate}%, "
            f"referral {setting.referral_commission_rate}%, platform fee {setting.platform_fee_rate}%"
        )

        print("\n🎉 Seeding complete!")


if __name__ == "__main__":
    asyncio.run(seed_users())
