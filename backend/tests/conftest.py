"""Pytest configuration and fixtures for KOL Bot tests.

This module provides fixtures for:
- Database: async SQLite in-memory engine and sessions
- HTTP client: AsyncClient bound to the FastAPI app with DB/settings overrides
- Mocks: Telegram sendMessage and the post fetcher
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import Settings, get_settings
from database import get_db
from models import Base
from services.telegram_client import TelegramApiResponse, TelegramClient
from tests.factories import (
    create_assignment,
    create_campaign,
    create_kol,
    create_organization,
    make_fetched_post,
)

WEBHOOK_SECRET = "test-webhook-secret"
BOT_TOKEN = "123456:TEST-TOKEN"


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        socialdata_api_key="test-socialdata-key",
        schedule_url="https://cal.example.com/agency",
        budget_allowed_usernames=["ops_lead"],
        budget_chat_title_prefixes=["KOL x", "KOLs x"],
    )


# -----------------------------------------------------------------------------
# Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
async def async_engine():
    """Create an async SQLite in-memory engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory configured like the app's."""
    return async_sessionmaker(
        bind=async_engine,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create an async database session for testing."""
    async with session_factory() as session:
        yield session


# -----------------------------------------------------------------------------
# Domain Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
async def organization(db):
    """Organization with a bot token and webhook secret."""
    org = await create_organization(db, telegram_bot_token=BOT_TOKEN, telegram_webhook_secret=WEBHOOK_SECRET)
    await db.commit()
    return org


@pytest.fixture
async def alice(db, organization):
    """KOL "alice" with Telegram username alice_x."""
    kol = await create_kol(db, organization, name="alice", telegram_username="alice_x")
    await db.commit()
    return kol


@pytest.fixture
async def summer_launch(db, organization):
    """ACTIVE campaign "Summer Launch" with a notification chat."""
    campaign = await create_campaign(
        db,
        organization,
        name="Summer Launch",
        total_budget=10_000,
        telegram_chat_id="-100999",
        created_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
    )
    await db.commit()
    return campaign


@pytest.fixture
async def alice_assignment(db, alice, summer_launch):
    """Alice's CONFIRMED assignment to Summer Launch."""
    assignment = await create_assignment(db, summer_launch, alice, assigned_budget=2_500, required_posts=2)
    await db.commit()
    return assignment


# -----------------------------------------------------------------------------
# Collaborator Mocks
# -----------------------------------------------------------------------------


@pytest.fixture
def send_message():
    """Patch TelegramClient.send_message; calls are (chat_id, text, **kwargs)."""
    mock = AsyncMock(return_value=TelegramApiResponse(ok=True, result={"message_id": 1}))
    with patch.object(TelegramClient, "send_message", mock):
        yield mock


@pytest.fixture
def fetch_post():
    """Patch the post fetcher used by the deliverable recorder."""
    mock = AsyncMock(side_effect=lambda url: make_fetched_post())
    with patch("services.deliverables.fetch_post", mock):
        yield mock


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(test_settings, session_factory):
    """FastAPI app with the test database and settings."""
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac
