"""
Pytest fixtures for test database, client, clock and authentication.

Each test gets its own SQLite file (through aiosqlite) with freshly created
tables, so tests are isolated without needing a running PostgreSQL.
The booking clock is frozen at FIXED_NOW for every request.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date, datetime, time, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker

from app.main import app
from app.db.base import Base
from app.db.session import enable_sqlite_write_lock, get_db
from app.core.clock import get_clock
from app.core.security import create_access_token, hash_password
from app.models.enums import ClassStatus, UserRole
from app.models.gym_class import GymClass
from app.models.user import User

# Monday morning; classes below start at 08:00
FIXED_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

TEST_PASSWORD = "testpassword123"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


class FrozenClock:
    """Callable clock whose time tests can move."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables in a throw-away database file, then dispose."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'flexbook_test.db'}", echo=False)
    enable_sqlite_write_lock(engine.sync_engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, clock: FrozenClock) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB session and the clock."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: create a user with the given role and concession balance."""

    async def _make_user(
        email: str,
        concessions: int = 5,
        role: UserRole = UserRole.MEMBER,
        is_active: bool = True,
    ) -> User:
        user = User(
            name=email.split("@")[0].title(),
            email=email,
            hashed_password=TEST_PASSWORD_HASH,
            role=role.value,
            concessions=concessions,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_class(db_session: AsyncSession):
    """Factory: create a gym class; published, 08:00, 20 seats unless told otherwise."""

    async def _make_class(
        name: str = "Morning Pilates",
        start_time: time = time(8, 0),
        max_capacity: int = 20,
        status: ClassStatus = ClassStatus.PUBLISHED,
        publish_date: date | None = None,
        end_date: date | None = None,
    ) -> GymClass:
        gym_class = GymClass(
            name=name,
            instructor="Emma Wilson",
            description=f"{name} session",
            start_time=start_time,
            duration_minutes=50,
            days_of_week=["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"],
            max_capacity=max_capacity,
            status=status.value,
            publish_date=publish_date,
            end_date=end_date,
        )
        db_session.add(gym_class)
        await db_session.commit()
        await db_session.refresh(gym_class)
        return gym_class

    return _make_class


def _bearer(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers_for():
    """Authorization headers with a Bearer token for any user."""
    return _bearer


@pytest_asyncio.fixture
async def member(make_user) -> User:
    return await make_user("member@example.com", concessions=5)


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user("admin@example.com", concessions=0, role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def member_headers(member: User) -> dict:
    return _bearer(member)


@pytest_asyncio.fixture
async def admin_headers(admin: User) -> dict:
    return _bearer(admin)


@pytest_asyncio.fixture
async def pilates(make_class) -> GymClass:
    return await make_class()
