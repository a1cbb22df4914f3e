"""Typed message content and the per-type validation rules.

Clients send a loose ``{"type": ..., ...}`` payload; it is parsed into one
of the content variants below before anything is written, so a persisted
row always carries exactly the columns of its type.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from typing import Any

from src.exceptions import ValidationException
from src.models.enums import ChatMessageType
from src.modules.chat.constants import (
    LATITUDE_RANGE,
    LONGITUDE_RANGE,
    MSG_INVALID_COORDINATES,
    MSG_INVALID_MEDIA_PATH,
    MSG_INVALID_TYPE,
    MSG_TEXT_REQUIRED,
)
from src.modules.chat.media_path import is_valid_media_path


@dataclass(frozen=True)
class TextContent:
    text: str
    type: ChatMessageType = ChatMessageType.TEXT

    def columns(self) -> dict:
        return {"text": self.text}


@dataclass(frozen=True)
class ImageContent:
    media_path: str
    type: ChatMessageType = ChatMessageType.IMAGE

    def columns(self) -> dict:
        return {"media_path": self.media_path}


@dataclass(frozen=True)
class LocationContent:
    latitude: float
    longitude: float
    type: ChatMessageType = ChatMessageType.LOCATION

    def columns(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}


MessageContent = TextContent | ImageContent | LocationContent


def _parse_coordinate(value: Any, bounds: tuple[float, float]) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    low, high = bounds
    if not low <= number <= high:
        return None
    return number


def parse_message_content(
    thread_id: uuid.UUID, payload: dict, media_prefix: str = "chats"
) -> MessageContent:
    """Validate a raw payload and return its content variant.

    Raises ValidationException with a client-facing reason.
    """
    raw_type = payload.get("type")
    try:
        message_type = ChatMessageType(raw_type)
    except (TypeError, ValueError):
        raise ValidationException(MSG_INVALID_TYPE) from None

    if message_type is ChatMessageType.TEXT:
        text = payload.get("text")
        text = text.strip() if isinstance(text, str) else ""
        if not text:
            raise ValidationException(MSG_TEXT_REQUIRED)
        return TextContent(text=text)

    if message_type is ChatMessageType.IMAGE:
        media_path = payload.get("media_path") or payload.get("mediaPath")
        if not is_valid_media_path(thread_id, media_path, media_prefix):
            raise ValidationException(MSG_INVALID_MEDIA_PATH)
        return ImageContent(media_path=media_path)

    latitude = _parse_coordinate(payload.get("lat"), LATITUDE_RANGE)
    longitude = _parse_coordinate(payload.get("lng"), LONGITUDE_RANGE)
    if latitude is None or longitude is None:
        raise ValidationException(MSG_INVALID_COORDINATES)
    return LocationContent(latitude=latitude, longitude=longitude)
