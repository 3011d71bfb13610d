"""Pytest configuration for Link-Up tests."""

import os

# Settings are read at import time, so the environment goes first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import timedelta
from unittest.mock import AsyncMock

import fakeredis.aioredis
import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import create_async_engine

from linkup.clients import kafka_producer, redis_client
from linkup.config import settings
from linkup.database import AsyncSessionLocal, Base, engine_options
from linkup.models import EventPost, UserProfile, utcnow

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def engine():
    """A fresh in-memory store per test, bound to the app's session factory."""
    test_engine = create_async_engine(TEST_DB_URL, **engine_options(TEST_DB_URL))
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    AsyncSessionLocal.configure(bind=test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
async def db(engine):
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture(autouse=True)
async def redis():
    fake = fakeredis.aioredis.FakeRedis(decode_responses=True)
    redis_client._redis = fake
    yield fake
    redis_client._redis = None
    await fake.aclose()


@pytest.fixture(autouse=True)
def producer():
    mock = AsyncMock()
    kafka_producer._producer = mock
    yield mock
    kafka_producer._producer = None


def make_token(user_id: str, name: str = None) -> str:
    claims = {"sub": user_id}
    if name:
        claims["name"] = name
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def bearer(user_id: str, name: str = None) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, name)}"}


@pytest.fixture
def auth():
    """Authorization headers for a user: auth("alice", "Alice")."""
    return bearer


@pytest.fixture
async def client(engine):
    from linkup.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_profile(db):
    async def _make(user_id: str, **fields) -> UserProfile:
        profile = UserProfile(
            user_id=user_id,
            display_name=fields.pop("display_name", user_id.title()),
            contact_channel=fields.pop("contact_channel", "phone"),
            contact_value=fields.pop("contact_value", f"+1-555-{user_id}"),
            interest_tags=fields.pop("interest_tags", ["Music"]),
            **fields,
        )
        db.add(profile)
        await db.commit()
        return profile

    return _make


@pytest.fixture
def make_event(db):
    async def _make(owner_user_id: str, **fields) -> EventPost:
        place_name = fields.pop("place_name", "Blue Bottle Cafe")
        event = EventPost(
            owner_user_id=owner_user_id,
            owner_display_name=fields.pop("owner_display_name", owner_user_id.title()),
            location_key=fields.pop("location_key", place_name),
            place_name=place_name,
            meetup_time=fields.pop("meetup_time", utcnow() + timedelta(days=1)),
            max_participants=fields.pop("max_participants", 2),
            current_interested_count=fields.pop("current_interested_count", 0),
            interest_tags=fields.pop("interest_tags", ["Music"]),
            **fields,
        )
        db.add(event)
        await db.commit()
        return event

    return _make
