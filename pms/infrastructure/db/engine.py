from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pms.config import Settings
from pms.infrastructure.db.tables import metadata


def build_engine(settings: Settings) -> AsyncEngine:
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is required for SQL mode")
    return create_engine_for_url(settings.database_url)


def create_engine_for_url(database_url: str) -> AsyncEngine:
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        # Una sola conexión compartida para que la base en memoria sobreviva entre sesiones.
        return create_async_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url)
    return create_async_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope(session_maker) -> AsyncIterator[AsyncSession]:
    async with session_maker() as session:
        async with session.begin():
            yield session


async def create_all(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


def to_db_time(value: datetime | None) -> datetime | None:
    """UTC sin zona para columnas DateTime indexadas."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).replace(tzinfo=None)
