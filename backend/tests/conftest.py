"""
Pytest configuration and shared fixtures for the Payment Order API tests.

Provides an in-memory SQLite Database, store/service fixtures, an httpx
client bound to the FastAPI app, and bearer tokens for a user, a second
user and an admin.
"""
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from config import settings
from database import Database
from main import app
from middleware.auth import issue_access_token
from middleware.rate_limit import limiter
from services.order_service import OrderService
from services.order_store import SqlOrderStore
from tests.helpers import ADMIN, OTHER_USER, USER

# ── Test Configuration ───────────────────────────────────────────────
# Test-only values for settings that would normally come from .env
settings.jwt_secret = "test-jwt-secret-for-pytest-only"
settings.gateway_callback_secret = "test-gateway-secret-for-pytest-only"


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def database() -> AsyncGenerator[Database, None]:
    """
    In-memory SQLite Database for each test.

    Uses StaticPool so every session sees the same in-memory database.
    """
    db = Database(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await db.open()
    yield db
    await db.close()


@pytest.fixture(scope="function")
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session() as session:
        yield session


@pytest.fixture
def store(db_session: AsyncSession) -> SqlOrderStore:
    return SqlOrderStore(db_session)


@pytest.fixture
def order_service(store: SqlOrderStore) -> OrderService:
    return OrderService(store)


# ── HTTP Fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def client(database: Database) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx client against the FastAPI app.

    The lifespan is not run; the test Database is attached to app.state
    the way the lifespan would attach it.
    """
    app.state.database = database
    app.state.creation_policy = None
    app.state.transition_listener = None
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.state.database = None
    app.state.creation_policy = None
    app.state.transition_listener = None
    limiter.reset()


@pytest.fixture
def user_token() -> str:
    return issue_access_token(subject=USER)


@pytest.fixture
def other_token() -> str:
    return issue_access_token(subject=OTHER_USER)


@pytest.fixture
def admin_token() -> str:
    return issue_access_token(subject=ADMIN, role="admin")
