"""Centralized v1 API router — all module routers are included here."""

from fastapi import APIRouter

from src.modules.chat.router import booking_chat_router
from src.modules.chat.router import router as chat_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(booking_chat_router)
v1_router.include_router(chat_router)
