"""
Pytest configuration and fixtures.

Provides shared fixtures for all tests including:
- In-memory database and sessions
- ASGI test client with the database dependency overridden
- Supabase-style JWTs
- Fake OpenAI and Stripe clients
"""

import os
import time
from types import SimpleNamespace
from typing import AsyncGenerator, Optional
from uuid import UUID, uuid4

# Settings are read on import, so the environment must be prepared first
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-supabase-jwt-secret-0123456789abcdef")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("ADMIN_EMAILS", "admin@example.com")
os.environ.setdefault("SITE_URL", "http://localhost:3000")
os.environ.setdefault("API_BASE_URL", "http://localhost:8000")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from moodboard.ai.client import get_openai_optional
from moodboard.billing.stripe_client import get_stripe
from moodboard.config import settings
from moodboard.db import get_db
from moodboard.integrations.http import get_http_client
from moodboard.main import app
from moodboard.models import Base, Profile, ProfileRole, SubscriptionTier
from moodboard.ratelimit import limiter


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app, using the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    # No OpenAI by default; tests opt in with the fake_openai fixture
    app.dependency_overrides[get_openai_optional] = lambda: None
    limiter.reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    limiter.reset()


def make_token(
    user_id: UUID,
    email: str = "user@example.com",
    expires_in: int = 3600,
    secret: Optional[str] = None,
    **claims,
) -> str:
    """Mint a token shaped like the ones Supabase Auth issues."""
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "email": email,
        "aud": settings.supabase_jwt_audience,
        "iat": now,
        "exp": now + expires_in,
        "user_metadata": {"full_name": "Test User"},
        "app_metadata": {"provider": "email"},
        **claims,
    }
    return jwt.encode(payload, secret or settings.supabase_jwt_secret, algorithm="HS256")


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def auth_headers(user_id) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {make_token(uuid4(), email='admin@example.com')}"}


async def create_profile(
    session_factory,
    user_id: UUID,
    email: str = "user@example.com",
    tier: SubscriptionTier = SubscriptionTier.FREE,
    role: ProfileRole = ProfileRole.USER,
) -> Profile:
    async with session_factory() as session:
        profile = Profile(id=user_id, email=email, subscription_tier=tier, role=role)
        session.add(profile)
        await session.commit()
        return profile


@pytest.fixture
async def pro_user(session_factory, user_id) -> Profile:
    return await create_profile(session_factory, user_id, tier=SubscriptionTier.PRO, role=ProfileRole.PRO)


# Fake OpenAI client


class FakeCompletions:
    def __init__(self):
        self.content = ""
        self.error: Optional[Exception] = None
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeImages:
    def __init__(self):
        self.error: Optional[Exception] = None
        self.calls: list[dict] = []

    async def generate(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        image = SimpleNamespace(url="https://images.example.com/generated.png", revised_prompt=kwargs["prompt"])
        return SimpleNamespace(data=[image])


class FakeOpenAI:
    def __init__(self):
        self.chat = SimpleNamespace(completions=FakeCompletions())
        self.images = FakeImages()


@pytest.fixture
def fake_openai(client) -> FakeOpenAI:
    fake = FakeOpenAI()
    app.dependency_overrides[get_openai_optional] = lambda: fake
    return fake


# Fake Stripe billing


class FakeStripeBilling:
    def __init__(self):
        self.customers: list[tuple] = []
        self.checkouts: list[tuple] = []
        self.portals: list[tuple] = []

    def create_customer(self, email, user_id):
        self.customers.append((email, user_id))
        return f"cus_test_{len(self.customers)}"

    def create_checkout_session(self, customer_id, price_id, user_id, origin, mode="subscription"):
        self.checkouts.append((customer_id, price_id, user_id, origin, mode))
        return "https://checkout.stripe.com/c/pay/cs_test_123"

    def create_portal_session(self, customer_id, return_url):
        self.portals.append((customer_id, return_url))
        return "https://billing.stripe.com/p/session/test_123"


@pytest.fixture
def stripe_billing(client) -> FakeStripeBilling:
    fake = FakeStripeBilling()
    app.dependency_overrides[get_stripe] = lambda: fake
    return fake


# Outbound provider HTTP


class ProviderRoutes:
    """MockTransport handler; tests set ``respond`` and inspect ``requests``."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.respond = lambda request: httpx.Response(404, json={"error": "not mocked"})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)


@pytest.fixture
async def provider_http(client) -> AsyncGenerator[ProviderRoutes, None]:
    routes = ProviderRoutes()
    http = httpx.AsyncClient(transport=httpx.MockTransport(routes))
    app.dependency_overrides[get_http_client] = lambda: http
    yield routes
    await http.aclose()
