"""
Test infrastructure for the Conduit articles API.

Strategy
--------
- SQLite in-memory via aiosqlite, with StaticPool so every session shares
  the one connection that holds the in-memory database.
- ``get_db`` and ``get_runner`` are overridden so both the user endpoints and
  ArticleService run against the test session factory.
- Tables are created before and dropped after every test.
- Redis is disabled by setting ``cache._redis = None``; the CacheManager
  treats that as a permanent miss, so listing reads always hit the database.
"""
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from conduit.cache import cache
from conduit.database import Base, StorageRunner, get_db, get_runner
from conduit.main import app
from conduit.middleware import install_query_counter
from conduit.models import User
from conduit.services.article_service import ArticleService
from conduit.stores import ArticleStore, TagStore, UserStore

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def override_get_runner() -> StorageRunner:
    return StorageRunner(async_session_test)


app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_runner] = override_get_runner


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """
    A session for seeding and inspecting rows directly.  Seed helpers
    commit, so the data is visible to the service's own sessions.
    """
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def runner() -> StorageRunner:
    return StorageRunner(async_session_test)


@pytest_asyncio.fixture
async def service(runner: StorageRunner) -> ArticleService:
    return ArticleService(runner, ArticleStore(), UserStore(), TagStore())


@pytest_asyncio.fixture
async def users(db_session: AsyncSession) -> dict[str, User]:
    """Three committed users keyed by username: alice, bob, carol."""
    created = {
        name: User(username=name, email=f"{name}@example.com", bio=f"{name} bio")
        for name in ("alice", "bob", "carol")
    }
    db_session.add_all(created.values())
    await db_session.commit()
    return created


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
