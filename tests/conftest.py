"""
Shared fixtures: in-memory SQLite database, fast hasher, fake clock.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from auth.jwt import TokenIssuer, TokenValidator
from auth.password import CredentialHasher
from database.session import init_models
from database.user_store import UserStore

SECRET = "test-secret-key-that-is-long-enough-for-hs256"

T0 = 1_700_000_000_000  # ms


class FakeClock:
    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> None:
        self.now += int((minutes * 60 + seconds) * 1000)


@pytest.fixture
def hasher():
    return CredentialHasher(rounds=4)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def issuer(clock):
    return TokenIssuer(SECRET, expiry_seconds=3600, clock=clock)


@pytest.fixture
def validator(clock):
    return TokenValidator(SECRET, clock=clock)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session, hasher):
    return UserStore(session, hasher=hasher)
