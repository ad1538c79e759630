"""
Test infrastructure for the Blog API.

Strategy
--------
- SQLite in-memory via aiosqlite stands in for the production database so
  the suite needs no running Postgres.
- StaticPool forces every session onto the same in-memory connection,
  which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- The app's get_db dependency is overridden so every test-time request uses
  the test session factory rather than the production one.
- All tables are created fresh before each test and dropped after.
- Redis is replaced by ``InMemoryRedis``, a dict-backed double covering the
  handful of hash commands the credential store issues.
- Mail is captured by ``RecordingTransport`` instead of being sent.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from blog_backend.credentials import CredentialStore
from blog_backend.database import Base, get_db
from blog_backend.main import app
from blog_backend.middleware import install_round_trip_counter
from blog_backend.notifications import NotificationDispatcher

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_round_trip_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override: replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class InMemoryRedis:
    """Dict-backed stand-in for ``redis.asyncio.Redis`` (decode_responses=True)."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = {}

    async def type(self, key: str) -> str:
        return "hash" if key in self.hashes else "none"

    async def hset(self, key: str, field: str, value: str) -> int:
        fields = self.hashes.setdefault(key, {})
        is_new = field not in fields
        fields[field] = value
        return int(is_new)

    async def hsetnx(self, key: str, field: str, value: str) -> int:
        fields = self.hashes.setdefault(key, {})
        if field in fields:
            return 0
        fields[field] = value
        return 1

    async def hget(self, key: str, field: str) -> str | None:
        return self.hashes.get(key, {}).get(field)

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.hashes.pop(key, None) is not None)

    async def aclose(self) -> None:
        pass


class RecordingTransport:
    """Mail transport that records messages instead of sending them."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str, str]] = []

    async def send_mail(self, to_address: str, subject: str, body: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP server unreachable")
        self.sent.append((to_address, subject, body))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """Yield a live AsyncSession for direct service-layer tests."""
    async with async_session_test() as session:
        yield session


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_test


@pytest.fixture
def fake_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def credentials(fake_redis: InMemoryRedis) -> CredentialStore:
    return CredentialStore(fake_redis)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def dispatcher(transport: RecordingTransport) -> NotificationDispatcher:
    return NotificationDispatcher(async_session_test, transport)


@pytest_asyncio.fixture
async def async_client(credentials: CredentialStore) -> AsyncClient:
    """
    Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport.

    The app's credential store is swapped for one backed by InMemoryRedis,
    and notifications are disabled so no background session touches the
    shared in-memory connection.
    """
    app.state.credential_store = credentials
    app.state.dispatcher = NotificationDispatcher(async_session_test)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
