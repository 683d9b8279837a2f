import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from conduit.config import settings
from conduit.middleware import install_query_counter

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# Register the per-request SQL query counter on the production engine.
install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create any missing tables.  Models must already be imported."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class StorageRunner:
    """
    Executes a unit of work against one ``AsyncSession``.

    A unit of work is any coroutine function that takes the session as its
    only argument.  The session is the execution context for every store
    call made inside it:

    - ``run`` is a read-only batch.  Nothing is committed and the reads are
      not guaranteed to observe a single snapshot.
    - ``run_in_transaction`` is all-or-nothing.  The transaction commits when
      the work returns and rolls back when it raises; the exception is
      re-raised unchanged.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def run(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self._session_factory() as session:
            return await work(session)

    async def run_in_transaction(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    return await work(session)
            except Exception as exc:
                logger.warning("Transaction rolled back: %s", exc)
                raise


def get_runner() -> StorageRunner:
    """FastAPI dependency returning a runner bound to the production session factory."""
    return StorageRunner(async_session)
