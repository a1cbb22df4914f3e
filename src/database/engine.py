"""Async engines for the API process and the purge workers."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from src.config import settings


def _connect_args(role: str) -> dict:
    # asyncpg reports this in pg_stat_activity; SQLite URLs take no server settings.
    if not settings.database_url.startswith("postgresql"):
        return {}
    return {"server_settings": {"application_name": f"{settings.db_application_name}-{role}"}}


engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
    pool_recycle=3600,
    echo=settings.environment == "development",
    connect_args=_connect_args("api"),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# Each purge job runs in its own event loop, so worker connections are never pooled.
worker_engine = create_async_engine(
    settings.database_url,
    poolclass=NullPool,
    connect_args=_connect_args("worker"),
)

worker_session = async_sessionmaker(worker_engine, class_=AsyncSession, expire_on_commit=False)
