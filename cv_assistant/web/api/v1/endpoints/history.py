"""Version history endpoints for Web API v1."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from .....domain.history import newest_first
from .....storage.project_store import ProjectStore
from ..deps import get_store

router = APIRouter(prefix="/projects/{project_id}/history", tags=["history"])


class HistoryEntryResponse(BaseModel):
    timestamp: str
    message: str
    is_latest: bool
    snapshot: Dict[str, Any]


class HistoryListResponse(BaseModel):
    items: List[HistoryEntryResponse]


class RevertResponse(BaseModel):
    timestamp: str
    document: Dict[str, Any]


@router.get("", response_model=HistoryListResponse)
async def list_history(project_id: str, store: ProjectStore = Depends(get_store)) -> HistoryListResponse:
    """Entries newest first, as shown in version pickers."""
    await store.get(project_id)
    entries = newest_first(await store.history(project_id).entries())
    return HistoryListResponse(
        items=[
            HistoryEntryResponse(
                timestamp=entry.timestamp,
                message=entry.message,
                is_latest=entry.is_latest,
                snapshot=entry.snapshot,
            )
            for entry in entries
        ]
    )


@router.post("/{timestamp}/revert", response_model=RevertResponse)
async def revert(project_id: str, timestamp: str, store: ProjectStore = Depends(get_store)) -> RevertResponse:
    await store.get(project_id)
    await store.history(project_id).revert(timestamp)
    await store.touch(project_id)
    return RevertResponse(timestamp=timestamp, document=await store.load_document(project_id))
