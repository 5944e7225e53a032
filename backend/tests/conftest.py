"""
Shared fixtures: an in-memory SQLite database per test, the FastAPI app wired
to it, and factories for users and bearer headers.
"""
import os

# Must be set before healthcard.config is first imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")

import itertools
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from healthcard.db.postgres import Base, get_db
from healthcard.main import app
from healthcard.api.middleware.auth import create_token_for_user
from healthcard.models.user import User
from healthcard.services import user_service

TEST_DATABASE_URL = "sqlite+aiosqlite://"
DEFAULT_PASSWORD = "secret123"

_counter = itertools.count(1)


@pytest.fixture
async def engine():
    eng = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """A session for service-level tests. Nothing is committed."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(session_factory):
    """HTTP client over the ASGI app, with ``get_db`` pointed at the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}


def identity_payload(role: str, **overrides) -> dict:
    """A valid create payload for *role*; overrides win."""
    n = next(_counter)
    payload = {
        "role": role,
        "email": f"{role}{n}@example.com",
        "password": DEFAULT_PASSWORD,
        "full_name": f"Test {role.capitalize()} {n}",
    }
    if role == "doctor":
        payload.update(specialization="Cardiology", license_number=f"LIC-{n:05d}")
    payload.update(overrides)
    return payload


@pytest.fixture
def make_user(session_factory):
    """Create a user of *role*.

    With ``session=`` the user is flushed into that session; otherwise it is
    committed through a short-lived session of its own.
    """

    async def _make(role: str, session: Optional[AsyncSession] = None, **overrides) -> User:
        data = identity_payload(role, **overrides)
        if session is not None:
            return await user_service.create_user(session, data)
        async with session_factory() as s:
            user = await user_service.create_user(s, data)
            await s.commit()
            return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        token = create_token_for_user(user).access_token
        return {"Authorization": f"Bearer {token}"}

    return _headers
