"""Pytest fixtures for booking chat tests."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config import Settings
from src.database.base import Base
from src.models.booking import Booking
from src.modules.chat.service import ChatService
from src.modules.identity.auth import AuthenticatedUser

from chat_fakes import (
    InMemoryObjectStore,
    RecordingNotificationSink,
    RecordingTaskQueue,
    make_user,
)

# Use SQLite for lightweight in-process testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///file::memory:?cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def async_test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def async_test_session(async_test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        async_test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Chat wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def chat_settings() -> Settings:
    return Settings(chat_enabled=True, chat_redact_messages=True, chat_purge_delay_seconds=0)


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def notifier() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def task_queue() -> RecordingTaskQueue:
    return RecordingTaskQueue()


@pytest.fixture
def client_user() -> AuthenticatedUser:
    return make_user("client")


@pytest.fixture
def staff_user() -> AuthenticatedUser:
    return make_user("staff")


@pytest_asyncio.fixture
async def booking(async_test_session, client_user) -> Booking:
    row = Booking(user_id=client_user.id)
    async_test_session.add(row)
    await async_test_session.commit()
    return row


@pytest.fixture
def chat_service(async_test_session, object_store, notifier, task_queue, chat_settings) -> ChatService:
    return ChatService(
        async_test_session,
        object_store=object_store,
        notifier=notifier,
        task_queue=task_queue,
        config=chat_settings,
    )
