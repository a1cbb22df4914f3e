"""Pydantic v2 schemas for booking chat API endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import ChatThreadStatus

# ---------------------------------------------------------------------------
# Thread schemas
# ---------------------------------------------------------------------------


class ThreadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    booking_id: uuid.UUID
    client_id: uuid.UUID
    admin_id: uuid.UUID | None = None
    status: ChatThreadStatus
    opened_at: datetime
    closing_at: datetime | None = None
    closed_at: datetime | None = None
    closed_by: uuid.UUID | None = None


# ---------------------------------------------------------------------------
# Message schemas
# ---------------------------------------------------------------------------


class MessageCreate(BaseModel):
    """Loose request body; per-type rules are enforced by the service."""

    model_config = ConfigDict(populate_by_name=True)

    type: Any = None
    text: Any = None
    media_path: Any = Field(None, alias="mediaPath")
    lat: Any = None
    lng: Any = None


class MessageResponse(BaseModel):
    id: uuid.UUID
    thread_id: uuid.UUID
    sender_id: uuid.UUID
    type: str
    text: str | None = None
    lat: float | None = None
    lng: float | None = None
    media_url: str | None = None
    created_at: datetime


class MessageListResponse(BaseModel):
    items: list[MessageResponse]
    next_cursor: uuid.UUID | None = None


# ---------------------------------------------------------------------------
# Media upload schemas
# ---------------------------------------------------------------------------


class UploadUrlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., alias="contentType", max_length=100)


class UploadUrlResponse(BaseModel):
    url: str
    media_path: str
    headers: dict[str, str] = {}
    expires_in: int


# ---------------------------------------------------------------------------
# Realtime channel schemas
# ---------------------------------------------------------------------------


class ChannelAuthRequest(BaseModel):
    channel_name: str = Field(..., min_length=1, max_length=200)


class ChannelAuthResponse(BaseModel):
    channel_name: str
    thread_id: uuid.UUID
    authorized: bool = True
