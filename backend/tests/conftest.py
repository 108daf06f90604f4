"""Shared test fixtures for backend tests."""

import os

# Settings are read at import time; point them at throwaway backends first.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SESSION_BACKEND"] = "memory"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_FORMAT"] = "text"

from typing import AsyncGenerator  # noqa: E402

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

import brokerdesk.models  # noqa: E402,F401
from brokerdesk.database import Base  # noqa: E402
from brokerdesk.main import app  # noqa: E402
from brokerdesk.api.deps import get_db  # noqa: E402
from brokerdesk.auth.jwt import create_access_token  # noqa: E402
from brokerdesk.models import User  # noqa: E402
from brokerdesk.services.seed import seed_demo_data  # noqa: E402


def auth_header(user: User) -> dict:
    """Authorization header carrying a valid access token for `user`."""
    token = create_access_token(user.to_principal())
    return {"Authorization": f"Bearer {token}"}


def _override_db(session: AsyncSession):
    """Create a dependency override for get_db."""
    async def _get_db():
        yield session
    return _get_db


@pytest_asyncio.fixture
async def db_session(tmp_path) -> AsyncGenerator[AsyncSession, None]:
    """A fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'brokerdesk.sqlite'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest_asyncio.fixture
async def users(db_session: AsyncSession) -> dict[str, User]:
    """Demo organizations and users, keyed by email."""
    return await seed_demo_data(db_session)


@pytest_asyncio.fixture
async def client_for(db_session: AsyncSession):
    """Factory for HTTP clients authenticated as a given user (None = anonymous)."""
    app.dependency_overrides[get_db] = _override_db(db_session)
    clients: list[AsyncClient] = []

    def _make(user: User | None = None) -> AsyncClient:
        headers = auth_header(user) if user is not None else {}
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=headers)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def superadmin_client(client_for, users) -> AsyncClient:
    return client_for(users["superadmin@brokerdesk.com"])


@pytest_asyncio.fixture
async def admin_client(client_for, users) -> AsyncClient:
    """TenantAdmin of Harbor Health."""
    return client_for(users["admin@harborhealth.com"])


@pytest_asyncio.fixture
async def agent_client(client_for, users) -> AsyncClient:
    """Agent of Harbor Health."""
    return client_for(users["agent@harborhealth.com"])


@pytest_asyncio.fixture
async def member_client(client_for, users) -> AsyncClient:
    """Member of Harbor Health."""
    return client_for(users["member@harborhealth.com"])


@pytest_asyncio.fixture
async def anon_client(client_for) -> AsyncClient:
    """HTTP client with no authentication."""
    return client_for()
