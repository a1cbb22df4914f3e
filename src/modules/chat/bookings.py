"""Booking lookups needed by chat: existence and owning client."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.booking import Booking


class BookingLookupBase(ABC):
    @abstractmethod
    async def exists(self, booking_id: uuid.UUID) -> bool:
        """Return True if the booking exists."""

    @abstractmethod
    async def owner_of(self, booking_id: uuid.UUID) -> uuid.UUID | None:
        """Return the owning client's user id, or None if the booking is missing."""


class SqlBookingLookup(BookingLookupBase):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def exists(self, booking_id: uuid.UUID) -> bool:
        return await self.owner_of(booking_id) is not None

    async def owner_of(self, booking_id: uuid.UUID) -> uuid.UUID | None:
        result = await self.db.execute(select(Booking.user_id).where(Booking.id == booking_id))
        return result.scalar_one_or_none()
