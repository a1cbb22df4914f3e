"""Router integration tests for booking chat endpoints.

The service runs against the SQLite test session with in-memory fakes for
storage, notifications and the task queue; auth is overridden per test.
"""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

from src.app import app
from src.config import settings
from src.database.base import utcnow
from src.exceptions import NotFoundException, TransientInfraException
from src.models.enums import ChatMessageType
from src.modules.chat.constants import JOB_CLOSE_AND_PURGE
from src.modules.chat.repository import ChatRepository
from src.modules.chat.router import get_chat_service, limiter
from src.modules.chat.service import ChatService
from src.modules.identity.auth import get_current_user

from chat_fakes import make_user


class _Actor:
    def __init__(self):
        self.user = None

    def __call__(self):
        return self.user


@pytest.fixture
def actor():
    return _Actor()


@pytest_asyncio.fixture
async def api(async_test_session, object_store, notifier, task_queue, chat_settings, actor):
    def override_chat_service() -> ChatService:
        return ChatService(
            async_test_session,
            object_store=object_store,
            notifier=notifier,
            task_queue=task_queue,
            config=chat_settings,
        )

    app.dependency_overrides[get_chat_service] = override_chat_service
    app.dependency_overrides[get_current_user] = actor
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    limiter.reset()


async def _open(api, actor, booking, user):
    actor.user = user
    response = await api.post(f"/api/v1/bookings/{booking.id}/chat/open")
    assert response.status_code == 200, response.text
    return response.json()


class TestThreadEndpoints:
    @pytest.mark.asyncio
    async def test_open_twice_returns_same_thread(self, api, actor, booking, client_user):
        first = await _open(api, actor, booking, client_user)
        second = await _open(api, actor, booking, client_user)

        assert first["id"] == second["id"]
        assert first["status"] == "open"
        assert first["client_id"] == str(client_user.id)
        assert first["closed_at"] is None

    @pytest.mark.asyncio
    async def test_open_unknown_booking_returns_404_envelope(self, api, actor, client_user):
        actor.user = client_user

        response = await api.post(
            f"/api/v1/bookings/{uuid.uuid4()}/chat/open", headers={"X-Request-ID": "req-123"}
        )

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["requestId"] == "req-123"
        assert response.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_close_enqueues_once_and_blocks_posting(
        self, api, actor, booking, client_user, staff_user, task_queue
    ):
        thread = await _open(api, actor, booking, client_user)
        actor.user = staff_user

        first = await api.patch(f"/api/v1/chat/threads/{thread['id']}/close")
        second = await api.patch(f"/api/v1/chat/threads/{thread['id']}/close")

        assert first.status_code == 200
        assert first.json()["status"] == "closing"
        assert first.json()["closing_at"] is not None
        assert second.json()["status"] == "closing"
        assert task_queue.jobs == [(JOB_CLOSE_AND_PURGE, {"thread_id": thread["id"]}, 0)]

        actor.user = client_user
        response = await api.post(
            f"/api/v1/chat/threads/{thread['id']}/messages", json={"type": "text", "text": "late"}
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "THREAD_CLOSED"

    @pytest.mark.asyncio
    async def test_outsider_gets_403(self, api, actor, booking, client_user):
        thread = await _open(api, actor, booking, client_user)
        actor.user = make_user("client")

        response = await api.get(f"/api/v1/chat/threads/{thread['id']}")

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"


class TestMessageEndpoints:
    @pytest.mark.asyncio
    async def test_post_text_message(self, api, actor, booking, client_user, notifier):
        thread = await _open(api, actor, booking, client_user)

        response = await api.post(
            f"/api/v1/chat/threads/{thread['id']}/messages", json={"type": "text", "text": "hello"}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["type"] == "text"
        assert body["text"] == "hello"
        assert body["lat"] is None
        assert body["lng"] is None
        assert body["media_url"] is None
        assert notifier.names() == ["message.created"]

    @pytest.mark.asyncio
    async def test_post_image_with_camel_case_path(self, api, actor, booking, client_user):
        thread = await _open(api, actor, booking, client_user)
        path = f"chats/{thread['id']}/photo.jpg"

        response = await api.post(
            f"/api/v1/chat/threads/{thread['id']}/messages",
            json={"type": "image", "mediaPath": path},
        )

        assert response.status_code == 201
        assert response.json()["media_url"].startswith(f"https://media.test/{path}")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,message",
        [
            ({"type": "invalid"}, "Invalid message type"),
            ({}, "Invalid message type"),
            ({"type": "x" * 50}, "Invalid message type"),
            ({"type": ["text"]}, "Invalid message type"),
            ({"type": "text", "text": 42}, "Text is required"),
            ({"type": "location", "lat": "invalid", "lng": "invalid"}, "Invalid coordinates"),
            ({"type": "text", "text": ""}, "Text is required"),
            ({"type": "image", "media_path": "chats/other/x.jpg"}, "Invalid media path for this thread"),
        ],
    )
    async def test_invalid_payloads_return_422(
        self, api, actor, booking, client_user, payload, message
    ):
        thread = await _open(api, actor, booking, client_user)

        response = await api.post(f"/api/v1/chat/threads/{thread['id']}/messages", json=payload)

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["message"] == message

    @pytest.mark.asyncio
    async def test_list_messages_paginates(self, api, actor, booking, client_user):
        thread = await _open(api, actor, booking, client_user)
        for i in range(3):
            await api.post(
                f"/api/v1/chat/threads/{thread['id']}/messages",
                json={"type": "text", "text": f"m{i}"},
            )

        first = await api.get(f"/api/v1/chat/threads/{thread['id']}/messages", params={"limit": 2})
        assert first.status_code == 200
        page = first.json()
        assert len(page["items"]) == 2
        assert page["next_cursor"] == page["items"][-1]["id"]

        rest = await api.get(
            f"/api/v1/chat/threads/{thread['id']}/messages",
            params={"limit": 2, "cursor": page["next_cursor"]},
        )
        assert len(rest.json()["items"]) == 1
        assert rest.json()["next_cursor"] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit,expected", [(500, 50), (0, 1), (-3, 1)])
    async def test_out_of_range_limit_is_clamped(
        self, api, actor, async_test_session, booking, client_user, limit, expected
    ):
        thread = await _open(api, actor, booking, client_user)
        repo = ChatRepository(async_test_session)
        for i in range(55):
            await repo.add_message(
                thread_id=uuid.UUID(thread["id"]),
                sender_id=client_user.id,
                message_type=ChatMessageType.TEXT,
                created_at=utcnow() + timedelta(seconds=i),
                text=f"m{i}",
            )
        await async_test_session.commit()

        response = await api.get(
            f"/api/v1/chat/threads/{thread['id']}/messages", params={"limit": limit}
        )

        assert response.status_code == 200
        page = response.json()
        assert len(page["items"]) == expected
        assert page["items"][0]["text"] == "m54"
        assert page["next_cursor"] == page["items"][-1]["id"]

    @pytest.mark.asyncio
    async def test_posting_is_rate_limited(self, api, actor, booking, client_user):
        thread = await _open(api, actor, booking, client_user)
        url = f"/api/v1/chat/threads/{thread['id']}/messages"

        statuses = [
            (await api.post(url, json={"type": "text", "text": f"spam {i}"})).status_code
            for i in range(31)
        ]

        assert statuses[:30] == [201] * 30
        assert statuses[30] == 429


class TestUploadAndChannelEndpoints:
    @pytest.mark.asyncio
    async def test_upload_url(self, api, actor, booking, client_user):
        thread = await _open(api, actor, booking, client_user)

        response = await api.post(
            f"/api/v1/chat/threads/{thread['id']}/upload-url",
            json={"filename": "receipt.webp", "contentType": "image/webp"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["media_path"].startswith(f"chats/{thread['id']}/")
        assert body["media_path"].endswith(".webp")
        assert body["headers"] == {"Content-Type": "image/webp"}
        assert body["expires_in"] == 900

    @pytest.mark.asyncio
    async def test_channel_authorization(self, api, actor, booking, client_user):
        thread = await _open(api, actor, booking, client_user)

        allowed = await api.post(
            "/api/v1/chat/channels/authorize",
            json={"channel_name": f"private-chat.{thread['id']}"},
        )
        actor.user = make_user("client")
        denied = await api.post(
            "/api/v1/chat/channels/authorize",
            json={"channel_name": f"private-chat.{thread['id']}"},
        )

        assert allowed.status_code == 200
        assert allowed.json() == {
            "channel_name": f"private-chat.{thread['id']}",
            "thread_id": thread["id"],
            "authorized": True,
        }
        assert denied.status_code == 403


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_missing_token_is_401(self):
        service = MagicMock(spec=ChatService)
        app.dependency_overrides[get_chat_service] = lambda: service
        try:
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.get(f"/api/v1/chat/threads/{uuid.uuid4()}")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_bearer_token_resolves_staff_role(self):
        staff_id = uuid.uuid4()
        token = jwt.encode(
            {"sub": str(staff_id), "email": "ops@example.com", "role": "STAFF"},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        service = MagicMock(spec=ChatService)
        service.get_thread = AsyncMock(side_effect=NotFoundException("missing"))

        app.dependency_overrides[get_chat_service] = lambda: service
        try:
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.get(
                    f"/api/v1/chat/threads/{uuid.uuid4()}",
                    headers={"Authorization": f"Bearer {token}"},
                )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 404
        user = service.get_thread.call_args.args[1]
        assert user.id == staff_id
        assert user.is_staff is True


class TestTransientFailures:
    @pytest.mark.asyncio
    async def test_unavailable_storage_returns_503_with_retry_after(self, actor, client_user):
        service = MagicMock(spec=ChatService)
        service.create_upload_url = AsyncMock(
            side_effect=TransientInfraException("Media storage unavailable", retry_after=30)
        )
        actor.user = client_user

        app.dependency_overrides[get_chat_service] = lambda: service
        app.dependency_overrides[get_current_user] = actor
        try:
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                response = await client.post(
                    f"/api/v1/chat/threads/{uuid.uuid4()}/upload-url",
                    json={"filename": "a.jpg", "contentType": "image/jpeg"},
                )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        assert response.json()["error"]["code"] == "SERVICE_UNAVAILABLE"
