"""Top-level v1 API router."""

from __future__ import annotations

from fastapi import APIRouter

from .endpoints.chat import router as chat_router
from .endpoints.history import router as history_router
from .endpoints.projects import router as projects_router

api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(projects_router)
api_v1_router.include_router(chat_router)
api_v1_router.include_router(history_router)
