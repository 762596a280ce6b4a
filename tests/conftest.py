"""Test fixtures and configuration."""

import logging
import os
import sys
from uuid import uuid4

import pytest
import pytest_asyncio
import structlog
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

# Set ENVIRONMENT for pydantic settings before the app modules load
os.environ["ENVIRONMENT"] = "testing"

from planner.database import Base, get_db  # noqa: E402
from planner.services import match_scoring  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# --- Structlog Configuration for Tests ---
@pytest.fixture(autouse=True, scope="session")
def configure_structlog_for_tests():
    """Configure structlog for proper capsys capture in tests."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(),
        foreign_pre_chain=processors[:-1],
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    yield

    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def reset_matching_config():
    """Drop the cached matching config so env overrides never leak between tests."""
    match_scoring._config_cache = None
    yield
    match_scoring._config_cache = None


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Fresh in-memory SQLite database per test.

    StaticPool keeps the single connection alive so every session sees the
    same database.
    """
    from planner import models  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(db_engine):
    """Database session bound to the per-test engine."""
    session = AsyncSession(db_engine, expire_on_commit=False)
    yield session
    await session.close()


@pytest.fixture
def user_id():
    return uuid4()


@pytest_asyncio.fixture(scope="function")
async def client(db, user_id):
    """HTTP client whose requests share the test session and carry ``X-User-Id``."""
    from planner.main import app

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Id": str(user_id)},
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
