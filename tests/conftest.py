import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("CLIENT_KEY", "test-client-key")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import timedelta
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from shortlink.config import Settings
from shortlink.database import build_session_factory, init_models
from shortlink.main import create_app
from shortlink.models import User
from shortlink.security import ACCESS_TOKEN_COOKIE, create_access_token
from shortlink.services.identity import IdentityProfile
from shortlink.services.rate_limiter import RateDecision

CLIENT_KEY = "test-client-key"


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class InMemoryRateLimiter:
    """Fixed-window stand-in for the Redis limiter: ``burst`` requests per ``period``."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.windows: dict[str, tuple[float, int]] = {}
        self.keys: list[str] = []

    async def allow(self, key, limit):
        self.keys.append(key)
        now = self.clock()
        period = limit.period.total_seconds()
        start, count = self.windows.get(key, (now, 0))
        if now - start >= period:
            start, count = now, 0

        if count >= limit.burst:
            return RateDecision(
                allowed=False,
                remaining=0,
                retry_after=timedelta(seconds=period - (now - start)),
            )

        count += 1
        self.windows[key] = (start, count)
        return RateDecision(allowed=True, remaining=limit.burst - count, retry_after=timedelta(0))


class StubVerifier:
    def __init__(self, profile: IdentityProfile):
        self.profile = profile
        self.tokens: list[str] = []

    async def verify(self, token: str) -> IdentityProfile:
        self.tokens.append(token)
        return self.profile


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        JWT_SECRET="test-jwt-secret",
        CLIENT_KEY=CLIENT_KEY,
        ENVIRONMENT="test",
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    async with build_session_factory(engine)() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(clock)


@pytest.fixture
def verifier() -> StubVerifier:
    return StubVerifier(IdentityProfile(
        email="ada@example.com",
        verified=True,
        first_name="Ada",
        last_name="Lovelace",
        picture="https://example.com/ada.png",
    ))


@pytest.fixture
def app(settings, engine, limiter, verifier):
    return create_app(settings=settings, engine=engine, limiter=limiter, verifier=verifier)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    # ASGITransport skips the lifespan; the engine fixture already created the tables
    async with ASGITransport(app=app) as transport:
        async with AsyncClient(
            transport=transport,
            base_url="http://test",
            headers={"Authorization": f"Bearer {CLIENT_KEY}"},
        ) as c:
            yield c


@pytest.fixture
async def user(db_session) -> User:
    user = User(email="martin@example.com", first_name="Martin", last_name="A", verified=True)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def auth_headers(user, settings) -> dict:
    token = create_access_token(user.id, settings)
    return {"Cookie": f"{ACCESS_TOKEN_COOKIE}={token}"}
