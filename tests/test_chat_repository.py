"""Unit tests for ChatRepository — conditional transitions, paging, redaction."""

import uuid
from datetime import timedelta

import pytest

from src.database.base import utcnow
from src.models.enums import ChatMessageType, ChatThreadStatus
from src.modules.chat.repository import ChatRepository


async def _open_thread(repo, booking, admin_id=None):
    thread, created = await repo.create_or_get_thread(
        booking_id=booking.id,
        client_id=booking.user_id,
        admin_id=admin_id,
        opened_at=utcnow(),
    )
    assert created
    await repo.db.commit()
    return thread


class TestThreadTransitions:
    @pytest.mark.asyncio
    async def test_create_or_get_returns_existing(self, async_test_session, booking):
        repo = ChatRepository(async_test_session)
        thread = await _open_thread(repo, booking)

        again, created = await repo.create_or_get_thread(
            booking_id=booking.id,
            client_id=booking.user_id,
            admin_id=uuid.uuid4(),
            opened_at=utcnow(),
        )

        assert created is False
        assert again.id == thread.id
        assert again.admin_id is None

    @pytest.mark.asyncio
    async def test_mark_closing_only_wins_once(self, async_test_session, booking):
        repo = ChatRepository(async_test_session)
        thread = await _open_thread(repo, booking)
        closer = uuid.uuid4()

        first = await repo.mark_closing(thread.id, closed_by=closer, closing_at=utcnow())
        second = await repo.mark_closing(thread.id, closed_by=uuid.uuid4(), closing_at=utcnow())
        await async_test_session.commit()

        assert first is True
        assert second is False
        refreshed = await repo.get_thread(thread.id)
        assert refreshed.status == ChatThreadStatus.CLOSING
        assert refreshed.closed_by == closer
        assert refreshed.closed_at is None

    @pytest.mark.asyncio
    async def test_lock_open_thread_only_while_open(self, async_test_session, booking):
        repo = ChatRepository(async_test_session)
        thread = await _open_thread(repo, booking)

        assert await repo.lock_open_thread(thread.id) is True

        await repo.mark_closing(thread.id, closed_by=uuid.uuid4(), closing_at=utcnow())
        assert await repo.lock_open_thread(thread.id) is False
        assert await repo.lock_open_thread(uuid.uuid4()) is False

    @pytest.mark.asyncio
    async def test_mark_closed_requires_closing(self, async_test_session, booking):
        repo = ChatRepository(async_test_session)
        thread = await _open_thread(repo, booking)

        assert await repo.mark_closed(thread.id, closed_at=utcnow()) is False

        await repo.mark_closing(thread.id, closed_by=uuid.uuid4(), closing_at=utcnow())
        assert await repo.mark_closed(thread.id, closed_at=utcnow()) is True
        assert await repo.mark_closed(thread.id, closed_at=utcnow()) is False
        await async_test_session.commit()

        refreshed = await repo.get_thread(thread.id)
        assert refreshed.status == ChatThreadStatus.CLOSED
        assert refreshed.closed_at is not None

    @pytest.mark.asyncio
    async def test_claim_admin_keeps_first_staff(self, async_test_session, booking):
        repo = ChatRepository(async_test_session)
        thread = await _open_thread(repo, booking)
        first_staff, second_staff = uuid.uuid4(), uuid.uuid4()

        assert await repo.claim_admin(thread.id, first_staff) is True
        assert await repo.claim_admin(thread.id, second_staff) is False
        await async_test_session.commit()

        refreshed = await repo.get_thread(thread.id)
        assert refreshed.admin_id == first_staff

    @pytest.mark.asyncio
    async def test_stalled_closing_excludes_attempted_and_recent(self, async_test_session, booking):
        repo = ChatRepository(async_test_session)
        thread = await _open_thread(repo, booking)
        await repo.mark_closing(
            thread.id, closed_by=uuid.uuid4(), closing_at=utcnow() - timedelta(hours=2)
        )
        await async_test_session.commit()

        cutoff = utcnow() - timedelta(hours=1)
        assert await repo.list_stalled_closing(cutoff) == [thread.id]
        assert await repo.list_stalled_closing(utcnow() - timedelta(hours=3)) == []

        await repo.record_purge_failure(thread.id, "attempt 1: timeout")
        await async_test_session.commit()
        assert await repo.list_stalled_closing(cutoff) == []

    @pytest.mark.asyncio
    async def test_record_purge_failure_counts_and_truncates(self, async_test_session, booking):
        repo = ChatRepository(async_test_session)
        thread = await _open_thread(repo, booking)

        await repo.record_purge_failure(thread.id, "x" * 5000)
        await repo.record_purge_failure(thread.id, "second")
        await async_test_session.commit()

        refreshed = await repo.get_thread(thread.id)
        await async_test_session.refresh(refreshed)
        assert refreshed.purge_attempts == 2
        assert refreshed.last_purge_error == "second"


class TestMessages:
    @pytest.mark.asyncio
    async def test_list_messages_newest_first_with_cursor(self, async_test_session, booking):
        repo = ChatRepository(async_test_session)
        thread = await _open_thread(repo, booking)
        base = utcnow()
        created = []
        for i in range(5):
            created.append(
                await repo.add_message(
                    thread_id=thread.id,
                    sender_id=booking.user_id,
                    message_type=ChatMessageType.TEXT,
                    created_at=base + timedelta(seconds=i),
                    text=f"message {i}",
                )
            )
        await async_test_session.commit()

        page = await repo.list_messages(thread.id, limit=2)
        assert [m.text for m in page] == ["message 4", "message 3"]

        next_page = await repo.list_messages(thread.id, before=page[-1], limit=2)
        assert [m.text for m in next_page] == ["message 2", "message 1"]

        last_page = await repo.list_messages(thread.id, before=next_page[-1], limit=2)
        assert [m.text for m in last_page] == ["message 0"]

    @pytest.mark.asyncio
    async def test_redact_nulls_content_and_keeps_metadata(self, async_test_session, booking):
        repo = ChatRepository(async_test_session)
        thread = await _open_thread(repo, booking)
        now = utcnow()
        await repo.add_message(
            thread_id=thread.id,
            sender_id=booking.user_id,
            message_type=ChatMessageType.TEXT,
            created_at=now,
            text="hello",
        )
        await repo.add_message(
            thread_id=thread.id,
            sender_id=booking.user_id,
            message_type=ChatMessageType.IMAGE,
            created_at=now + timedelta(seconds=1),
            media_path=f"chats/{thread.id}/a.jpg",
        )
        await repo.add_message(
            thread_id=thread.id,
            sender_id=booking.user_id,
            message_type=ChatMessageType.LOCATION,
            created_at=now + timedelta(seconds=2),
            latitude=1.5,
            longitude=-2.25,
        )
        await async_test_session.commit()

        assert await repo.list_media_paths(thread.id) == [f"chats/{thread.id}/a.jpg"]

        assert await repo.redact_messages(thread.id) == 3
        assert await repo.redact_messages(thread.id) == 0
        await async_test_session.commit()

        messages = await repo.list_messages(thread.id, limit=10)
        assert len(messages) == 3
        for message in messages:
            await async_test_session.refresh(message)
            assert message.text is None
            assert message.media_path is None
            assert message.latitude is None
            assert message.longitude is None
            assert message.sender_id == booking.user_id
            assert message.created_at is not None
        assert {m.type for m in messages} == set(ChatMessageType)
        assert await repo.list_media_paths(thread.id) == []
