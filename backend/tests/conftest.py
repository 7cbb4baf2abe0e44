"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite file database so that services, the rate
limiter and "concurrent" sessions can all open separate connections to the
same data, the way they would against PostgreSQL.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_SWEEP_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import timedelta
from typing import AsyncGenerator

import jwt
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from event_admission.main import app
from event_admission.core import clock
from event_admission.core.config import get_settings
from event_admission.core.security import MANAGE_REGISTRATIONS
from event_admission.db.base import Base
from event_admission.db.session import get_db
from event_admission.models.event import Event, EventPhase
from event_admission.services.rate_limit_service import DatabaseRateLimiter
from event_admission.services.strategy_factory import get_rate_limiter

ORGANIZER_ID = 1
PARTICIPANT_ID = 42


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables in a fresh database, yield a session factory, then dispose."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'admission.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def rate_limiter(session_factory) -> DatabaseRateLimiter:
    return DatabaseRateLimiter(session_factory)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, rate_limiter) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database and a database rate limiter."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_event(session_factory):
    """Factory for events. Returns a detached Event with its columns loaded."""

    async def _make(**overrides) -> Event:
        values = {
            "title": "Spring Open",
            "organizer_id": ORGANIZER_ID,
            "capacity": 2,
            "phase": EventPhase.OPEN.value,
            "start_time": clock.utcnow() + timedelta(days=7),
        }
        values.update(overrides)
        event = Event(**values)
        async with session_factory() as session:
            session.add(event)
            await session.commit()
            await session.refresh(event)
        return event

    return _make


@pytest_asyncio.fixture
async def test_event(make_event) -> Event:
    """Open event with two slots starting in a week."""
    return await make_event()


def create_access_token(data: dict, expires_delta: timedelta = timedelta(minutes=30)) -> str:
    """Mint a token the way the external auth service does."""
    settings = get_settings()
    claims = {**data, "exp": clock.utcnow() + expires_delta}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def auth_headers_for(participant_id: int, permissions: tuple[str, ...] = ()) -> dict:
    token = create_access_token(data={"sub": str(participant_id), "permissions": list(permissions)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> dict:
    """Authorization headers for a plain participant."""
    return auth_headers_for(PARTICIPANT_ID)


@pytest.fixture
def organizer_headers() -> dict:
    return auth_headers_for(ORGANIZER_ID)


@pytest.fixture
def staff_headers() -> dict:
    """A non-organizer holding the registrations:manage grant."""
    return auth_headers_for(900, (MANAGE_REGISTRATIONS,))


@pytest.fixture
def headers_for():
    return auth_headers_for
