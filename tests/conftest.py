"""
Pytest configuration and shared fixtures for testing.
Sets up a throwaway database per test and an HTTP test client.
"""

import os

# Configure the app from the environment before any app imports
os.environ["SKIP_ENV_FILE"] = "1"
os.environ["APP_ENV"] = "test"
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"  # Replaced per test below
os.environ["SESSION_BACKEND"] = "memory"
os.environ["SMTP_HOST"] = ""
os.environ["LOG_FILE"] = ""

# Enable metrics endpoint for testing
os.environ["ENABLE_METRICS"] = "true"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from account_service.main import app
from account_service.db import Base
from account_service import db as app_db
from account_service.sessions import ClientSession, MemorySessionStore


@pytest_asyncio.fixture(scope="function")
async def test_db_engine(tmp_path):
    """Create a fresh SQLite database for one test and point the app at it."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,  # Avoid connection pooling in tests
    )

    test_session_maker = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Store original session maker and override it BEFORE creating tables
    original_session = app_db.async_session
    app_db.async_session = test_session_maker

    # Tests create tables directly; deployments use Alembic migrations
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    # Restore original session maker
    app_db.async_session = original_session

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(test_db_engine):
    """Create a test HTTP client bound to the per-test database."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        timeout=30.0
    ) as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def second_client(test_db_engine):
    """Another browser: a client with its own cookie jar."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        timeout=30.0
    ) as ac:
        yield ac


@pytest.fixture
def session_store():
    """Isolated in-memory session store for service-level tests."""
    return MemorySessionStore()


@pytest.fixture
def client_session(session_store):
    """A signed-out client session backed by the isolated store."""
    return ClientSession(session_store)


@pytest.fixture
def sample_user():
    """Sample user data for testing."""
    return {
        "name": "Test User",
        "email": "test@example.com",
        "password": "password123"
    }


@pytest.fixture
def sample_users():
    """Multiple sample users for bulk testing."""
    return [
        {"name": "Alice", "email": "alice@example.com", "password": "password123"},
        {"name": "Bob", "email": "bob@example.com", "password": "password123"},
        {"name": "Charlie", "email": "charlie@example.com", "password": "password123"},
    ]
