from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from workshop_portal.main import app
from workshop_portal.database import Base, get_db
from workshop_portal.api.deps import get_feed, get_password_hash
from workshop_portal.models.user import User
from workshop_portal.repositories.memory import MemoryInventoryStore
from workshop_portal.security.rbac import Role
from workshop_portal.services.change_feed import PollingChangeFeed
from workshop_portal.services.inventory.claims import InventoryService
from workshop_portal.services.inventory.devices import DeviceService
from workshop_portal.services.inventory.types import Actor
from workshop_portal.services.notifications import MemoryNotificationSink

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

ENGINEER_PASSWORD = "engineerpass123"
ADMIN_PASSWORD = "adminpass12345"


class FakeClock:
    """Settable UTC clock injected into the inventory services."""

    def __init__(self, start: datetime = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ---------------------------------------------------------------------------
# In-memory core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(admin, supervisor, engineer_a, engineer_b, engineer_c):
    store = MemoryInventoryStore()
    for actor in (admin, supervisor, engineer_a, engineer_b, engineer_c):
        store.users.register(actor)
    return store


@pytest.fixture
def sink():
    return MemoryNotificationSink()


@pytest.fixture
def feed(clock):
    return PollingChangeFeed(buffer_size=50, clock=clock)


@pytest.fixture
def inventory(store, sink, feed, clock):
    return InventoryService(store, notifications=sink, feed=feed, clock=clock)


@pytest.fixture
def devices(store, feed, clock):
    return DeviceService(store, feed=feed, clock=clock)


@pytest.fixture
def admin():
    return Actor(id=100, name="Alex Admin", role=Role.ADMIN)


@pytest.fixture
def supervisor():
    return Actor(id=101, name="Sam Supervisor", role=Role.SUPERVISOR)


@pytest.fixture
def engineer_a():
    return Actor(id=1, name="Engineer A", role=Role.ENGINEER)


@pytest.fixture
def engineer_b():
    return Actor(id=2, name="Engineer B", role=Role.ENGINEER)


@pytest.fixture
def engineer_c():
    return Actor(id=3, name="Engineer C", role=Role.ENGINEER)


# ---------------------------------------------------------------------------
# Database and HTTP fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_db():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


async def _create_user(db: AsyncSession, email: str, password: str, role: Role, **kwargs) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        role=role.value,
        is_active=True,
        **kwargs,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(test_db: AsyncSession):
    """An engineer account."""
    return await _create_user(
        test_db, "engineer@example.com", ENGINEER_PASSWORD, Role.ENGINEER,
        first_name="Erin", last_name="Engineer", rza_number="1001",
    )


@pytest_asyncio.fixture
async def other_engineer(test_db: AsyncSession):
    return await _create_user(
        test_db, "other@example.com", ENGINEER_PASSWORD, Role.ENGINEER,
        first_name="Olly", last_name="Other", rza_number="1002",
    )


@pytest_asyncio.fixture
async def admin_user(test_db: AsyncSession):
    return await _create_user(
        test_db, "admin@example.com", ADMIN_PASSWORD, Role.ADMIN,
        first_name="Ada", last_name="Admin", rza_number="9001",
    )


@pytest.fixture
def change_feed():
    return PollingChangeFeed(buffer_size=100)


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, change_feed):
    """Create test client with overridden database and change feed."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_feed] = lambda: change_feed

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _login(client: AsyncClient, email: str, password: str) -> dict:
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert response.status_code == 200, response.text
    # Tests pick the identity per request through the bearer header
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest_asyncio.fixture
async def engineer_headers(client: AsyncClient, test_user: User):
    return await _login(client, test_user.email, ENGINEER_PASSWORD)


@pytest_asyncio.fixture
async def other_engineer_headers(client: AsyncClient, other_engineer: User):
    return await _login(client, other_engineer.email, ENGINEER_PASSWORD)


@pytest_asyncio.fixture
async def admin_headers(client: AsyncClient, admin_user: User):
    return await _login(client, admin_user.email, ADMIN_PASSWORD)


@pytest_asyncio.fixture
async def authenticated_client(client: AsyncClient, engineer_headers: dict):
    """Client logged in as the engineer."""
    client.headers.update(engineer_headers)
    return client
