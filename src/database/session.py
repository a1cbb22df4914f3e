import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from src.database.engine import async_session

logger = logging.getLogger(__name__)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a request-scoped session.

    Chat services commit explicitly before publishing events or enqueueing
    jobs; anything still pending when the handler returns is committed here,
    and a failed request rolls back its open transaction.
    """
    async with async_session() as session:
        try:
            yield session
            if session.in_transaction():
                await session.commit()
        except Exception:
            if session.in_transaction():
                logger.debug("Rolling back request transaction")
                await session.rollback()
            raise
