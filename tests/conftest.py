"""Shared pytest fixtures for engine, store and API tests.

Tests run against a throwaway SQLite database (aiosqlite) unless
TEST_DATABASE_URL points at another SQLAlchemy async URL.
"""

import datetime
import json
import os
import tempfile
from typing import AsyncGenerator

_TEST_DB_DIR = tempfile.mkdtemp(prefix="shortlinks-tests-")
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB_DIR}/test.db")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from app.config import Settings, get_settings  # noqa: E402
from app.database import Base, build_engine, get_db  # noqa: E402
from app.dependencies import get_identity_resolver  # noqa: E402
from app.identity import INTROSPECT_PATH, IdentityResolver  # noqa: E402
from app.lifecycle import ShortLinkService  # noqa: E402
from app.main import app  # noqa: E402
from app.models import ShortLink  # noqa: E402,F401
from app.store import SQLAlchemyRecordStore  # noqa: E402

TOKENS = {
    "token-alice": {"active": True, "userId": "alice", "tenantId": "acme", "roles": ["USER"]},
    "token-bob": {"active": True, "userId": "bob", "tenantId": "globex", "roles": ["USER"]},
    "token-revoked": {"active": False},
}


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, start: datetime.datetime | None = None):
        self.now = start or datetime.datetime(2024, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **delta: float) -> datetime.datetime:
        self.now = self.now + datetime.timedelta(**delta)
        return self.now


def introspection_handler(request: httpx.Request) -> httpx.Response:
    assert request.url.path == INTROSPECT_PATH
    token = json.loads(request.content)["token"]
    return httpx.Response(200, json=TOKENS.get(token, {"active": False}))


@pytest.fixture
def settings() -> Settings:
    return get_settings().model_copy(update={"SHORT_CODE_LENGTH": 7})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = build_engine(get_settings())
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(db_session: AsyncSession) -> SQLAlchemyRecordStore:
    return SQLAlchemyRecordStore(db_session)


@pytest.fixture
def service(store: SQLAlchemyRecordStore, settings: Settings, clock: FakeClock) -> ShortLinkService:
    return ShortLinkService(store, settings=settings, clock=clock)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncClient, None]:
    auth_client = httpx.AsyncClient(transport=httpx.MockTransport(introspection_handler), base_url="http://auth.test")

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def override_get_identity_resolver() -> IdentityResolver:
        return IdentityResolver(auth_client)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_resolver] = override_get_identity_resolver

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    await auth_client.aclose()
