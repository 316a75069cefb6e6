"""
Centralized Test Configuration.
"""

import asyncio
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, get_session_factory, Base
from backend.app.core.redis_client import get_redis
from backend.app.core.jwt import create_access_token
from backend.app.core.reliability import site_directory_breaker
import backend.app.core.redis_client as redis_client_module
from backend.app.models.enums import UserRole
from backend.app.models.vehicle import Vehicle
from backend.app.models.service_site import ServiceSite
from backend.app.models.work_item import WorkItem
from backend.app.domain.tracking import trip_lifecycle
from backend.app.schemas.trip import TripStart

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ORG_ID = 1
OTHER_ORG_ID = 2
OPERATOR_ID = 100
OTHER_OPERATOR_ID = 101
MANAGER_ID = 200

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockLock:
    """In-process stand-in for ``redis.asyncio.lock.Lock``."""

    def __init__(self, owner, name, timeout=None, blocking_timeout=None):
        self.owner = owner
        self.name = name
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self._held = False

    async def acquire(self):
        lock = self.owner.locks.setdefault(self.name, asyncio.Lock())
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
        except asyncio.TimeoutError:
            return False
        self._held = True
        self.owner.acquired.append(self.name)
        return True

    async def release(self):
        if self._held:
            self.owner.locks[self.name].release()
            self._held = False


class MockRedis:
    def __init__(self):
        self.store = {}
        self.locks = {}
        self.acquired = []
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, *keys):
        if self._closed:
            return 0
        return sum(1 for key in keys if key in self.store)

    def lock(self, name, timeout=None, blocking_timeout=None):
        return MockLock(self, name, timeout=timeout, blocking_timeout=blocking_timeout)

    async def flushdb(self):
        if not self._closed:
            self.store = {}
            self.locks = {}
            self.acquired = []

    async def aclose(self):
        self._closed = True
        self.store = {}


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by locks, token checks and health
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()
    site_directory_breaker.reset_state()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestingSessionLocal


def make_token(user_id: int, role: UserRole = UserRole.OPERATOR, organization_id: int = ORG_ID) -> str:
    """Mint a token the way the platform auth service does."""
    return create_access_token(data={
        "sub": f"user{user_id}",
        "user_id": user_id,
        "organization_id": organization_id,
        "role": role.value,
    })


def auth_headers(user_id: int, role: UserRole = UserRole.OPERATOR, organization_id: int = ORG_ID) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role, organization_id)}"}


@pytest.fixture
def operator_headers():
    return auth_headers(OPERATOR_ID)


@pytest.fixture
def manager_headers():
    return auth_headers(MANAGER_ID, UserRole.MANAGER)


@pytest.fixture
async def vehicle(db_session):
    vehicle = Vehicle(organization_id=ORG_ID, plate_number="01A123BC", current_odometer=100)
    db_session.add(vehicle)
    await db_session.commit()
    await db_session.refresh(vehicle)
    return vehicle


@pytest.fixture
async def site(db_session):
    """Service site at the reference position used by the GPS tests."""
    site = ServiceSite(
        organization_id=ORG_ID,
        site_number="VM-001",
        name="Lobby snack machine",
        address="1 Main St",
        latitude=41.311100,
        longitude=69.279700,
    )
    db_session.add(site)
    await db_session.commit()
    await db_session.refresh(site)
    return site


@pytest.fixture
async def work_item(db_session, site):
    item = WorkItem(organization_id=ORG_ID, site_id=site.id, title="Refill snacks")
    db_session.add(item)
    await db_session.commit()
    await db_session.refresh(item)
    return item


@pytest.fixture
async def active_trip(db_session, vehicle):
    """ACTIVE trip of the default operator, started at odometer 100."""
    return await trip_lifecycle.start_trip(
        db_session,
        organization_id=ORG_ID,
        employee_id=OPERATOR_ID,
        data=TripStart(vehicle_id=vehicle.id, start_odometer=100),
        actor_id=OPERATOR_ID,
    )
