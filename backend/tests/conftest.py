"""Shared fixtures: in-memory SQLite, an in-process Redis stand-in, and
recording mail/geolocation doubles wired in through dependency overrides."""

import fnmatch
import os
import time

os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("JWT_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from core.errors import DownstreamDegraded  # noqa: E402
from core.result import Err, Ok  # noqa: E402
from db.cache import get_cache  # noqa: E402
from db.session import Base, get_db  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from main import app  # noqa: E402
from models.auth import Account  # noqa: E402
from redis.exceptions import ConnectionError as RedisConnectionError  # noqa: E402
from services.email import Mailer, get_mailer  # noqa: E402
from services.geolocation import get_geolocator  # noqa: E402
from services.presence import PresenceRegistry, get_presence  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

PASSWORD = "correct-horse-battery"


class FakeRedis:
    """Dictionary-backed subset of the ``redis.asyncio.Redis`` API."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.expiry: dict[str, float] = {}
        self.down = False

    def _check(self):
        if self.down:
            raise RedisConnectionError("cache is down")

    def _alive(self, key: str) -> bool:
        deadline = self.expiry.get(key)
        if deadline is not None and deadline <= time.time():
            self.store.pop(key, None)
            self.expiry.pop(key, None)
        return key in self.store

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.store[key] if self._alive(key) else None

    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        if ex is not None:
            self.expiry[key] = time.time() + ex
        else:
            self.expiry.pop(key, None)
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def mget(self, keys):
        self._check()
        return [self.store[key] if self._alive(key) else None for key in keys]

    async def ttl(self, key):
        self._check()
        if not self._alive(key):
            return -2
        deadline = self.expiry.get(key)
        return -1 if deadline is None else int(deadline - time.time())

    async def scan_iter(self, match=None, count=None):
        self._check()
        for key in list(self.store):
            if self._alive(key) and (match is None or fnmatch.fnmatchcase(key, match)):
                yield key

    async def aclose(self):
        return None


class RecordingMailer(Mailer):
    """Mailer that renders templates but records messages instead of sending."""

    def __init__(self, fail: bool = False):
        super().__init__(api_key="test", domain="mg.test")
        self.fail = fail
        self.sent: list[dict] = []

    async def send(self, to, subject, html, text=None):
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        if self.fail:
            return Err(DownstreamDegraded(self.provider, "HTTP 500"))
        return Ok(f"<{len(self.sent)}@mg.test>")

    def to(self, address: str) -> list[dict]:
        return [message for message in self.sent if message["to"] == address]


class StubGeolocator:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.lookups: list[str] = []

    async def lookup(self, ip):
        self.lookups.append(ip)
        if self.fail:
            return Err(DownstreamDegraded("ipinfo", "HTTP 429"))
        return Ok({"city": "Lagos", "region": "Lagos", "country": "NG", "loc": "6.45,3.39"})


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache():
    return FakeRedis()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def geolocator():
    return StubGeolocator()


@pytest.fixture
def presence():
    return PresenceRegistry()


@pytest.fixture
def overrides(session_factory, cache, mailer, geolocator, presence):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_geolocator] = lambda: geolocator
    app.dependency_overrides[get_presence] = lambda: presence
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(overrides):
    transport = ASGITransport(app=overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def signup(client, email="ada@example.com", password=PASSWORD, **extra):
    response = await client.post(
        "/auth/signup", json={"email": email, "password": password, "name": "Ada", **extra}
    )
    assert response.status_code == 200, response.text
    return response.json()


async def login(client, email="ada@example.com", password=PASSWORD, user_agent=None):
    headers = {"User-Agent": user_agent} if user_agent else None
    return await client.post(
        "/auth/login", json={"email": email, "password": password}, headers=headers
    )


async def fetch_account(session_factory, email: str) -> Account:
    async with session_factory() as session:
        result = await session.execute(select(Account).filter(Account.email == email))
        return result.scalars().one()


async def update_account(session_factory, email: str, **values) -> None:
    async with session_factory() as session:
        result = await session.execute(select(Account).filter(Account.email == email))
        account = result.scalars().one()
        for key, value in values.items():
            setattr(account, key, value)
        await session.commit()
