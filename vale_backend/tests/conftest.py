"""
Centralized Test Configuration.
"""

import itertools

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool
from redis.exceptions import ConnectionError as RedisConnectionError

from vale_backend.app.main import app
from vale_backend.app.db.session import get_db, Base, atomic
from vale_backend.app.core.redis_client import get_redis
import vale_backend.app.core.redis_client as redis_client_module
from vale_backend.app.domain.ledger.ledger_service import LedgerService
from vale_backend.app.domain.users.user_service import UserService
from vale_backend.app.models.enums import UserRole, LedgerEntryKind

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_emails = itertools.count(1)


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.expiries = {}
        self._closed = False

    def _check(self):
        if self._closed:
            raise RedisConnectionError("Connection closed")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.expiries[key] = ex
        return True

    async def delete(self, key):
        self._check()
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        self._check()
        self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture(autouse=True)
def apply_overrides(session_factory, mock_redis, monkeypatch):
    """Route the app's database and Redis dependencies to the test doubles."""
    monkeypatch.setattr(redis_client_module, "redis_client", mock_redis)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def create_user(db_session):
    """Factory registering users through the service layer."""
    async def _create(role=UserRole.CLIENT, name="Test User", referral_code=None, email=None, approved=True):
        return await UserService.register_user(
            db_session,
            name=name,
            email=email or f"user{next(_emails)}@test.com",
            role=role,
            referral_code=referral_code,
            allow_admin=role == UserRole.ADMIN,
            approved=approved,
        )
    return _create


@pytest.fixture
async def admin(create_user):
    return await create_user(UserRole.ADMIN, name="Admin")


@pytest.fixture
async def merchant(create_user):
    return await create_user(UserRole.MERCHANT, name="Merchant")


@pytest.fixture
async def client_user(create_user):
    return await create_user(UserRole.CLIENT, name="Client")


@pytest.fixture
def fund(db_session):
    """Credit a user's ledger directly (minor units)."""
    async def _fund(user_id, amount):
        async with atomic(db_session):
            return await LedgerService.post_entry(
                db_session,
                user_id=user_id,
                kind=LedgerEntryKind.SALE_CASHBACK,
                amount=amount,
                description="test funding",
            )
    return _fund
