import asyncio

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from blog_backend.config import settings
from blog_backend.errors import StorageError
from blog_backend.middleware import install_round_trip_counter

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

install_round_trip_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def bounded(awaitable, timeout: float | None = None):
    """
    Await a single storage round trip, giving up after ``STORAGE_TIMEOUT``.

    A stalled store surfaces as ``StorageError`` instead of hanging the
    request forever.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout or settings.STORAGE_TIMEOUT)
    except asyncio.TimeoutError as exc:
        raise StorageError("storage round trip timed out") from exc


async def get_db():
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
