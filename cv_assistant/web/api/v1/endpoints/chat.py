"""Chat turn, transcript and job match endpoints for Web API v1."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from .....config import AppConfig
from .....core.orchestrator import ConversationOrchestrator
from .....providers import resolve_api_key
from .....storage.project_store import ProjectStore
from ..deps import get_config, get_orchestrator, get_store

router = APIRouter(prefix="/projects/{project_id}", tags=["chat"])


class ChatMessageResponse(BaseModel):
    role: str
    content: str
    timestamp: Optional[str] = None


class TranscriptResponse(BaseModel):
    items: List[ChatMessageResponse]


class ChatRequest(BaseModel):
    message: str
    api_key: Optional[str] = Field(default=None, description="Overrides the configured credential")
    model: Optional[str] = None


class ChatResponse(BaseModel):
    reply: str
    applied: bool
    timestamp: Optional[str] = None
    messages: List[ChatMessageResponse]
    document: Dict[str, Any]


class JobMatchRequest(BaseModel):
    job_description: str
    api_key: Optional[str] = None
    model: Optional[str] = None


class JobMatchResponse(BaseModel):
    matched: List[str]
    missing: List[str]


def _credential(config: AppConfig, override: Optional[str]) -> str:
    return resolve_api_key(config.provider, override) if override else config.api_key


@router.get("/chat", response_model=TranscriptResponse)
async def get_transcript(project_id: str, store: ProjectStore = Depends(get_store)) -> TranscriptResponse:
    messages = await store.load_chat(project_id)
    return TranscriptResponse(items=[ChatMessageResponse(**m.to_dict()) for m in messages])


@router.post("/chat", response_model=ChatResponse)
async def send_message(
    project_id: str,
    request: ChatRequest,
    store: ProjectStore = Depends(get_store),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    config: AppConfig = Depends(get_config),
) -> ChatResponse:
    await store.get(project_id)
    result = await orchestrator.send_message(
        project_id,
        request.message,
        _credential(config, request.api_key),
        request.model or config.model,
    )
    # The transcript already holds the failure line; the status code carries the kind.
    if result.error is not None:
        raise result.error
    return ChatResponse(
        reply=result.reply,
        applied=result.applied,
        timestamp=result.history_entry.timestamp if result.history_entry else None,
        messages=[ChatMessageResponse(**m.to_dict()) for m in result.messages],
        document=result.document or {},
    )


@router.post("/job-match", response_model=JobMatchResponse)
async def match_job(
    project_id: str,
    request: JobMatchRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    config: AppConfig = Depends(get_config),
) -> JobMatchResponse:
    match = await orchestrator.analyze_job_description(
        project_id,
        request.job_description,
        _credential(config, request.api_key),
        request.model or config.model,
    )
    return JobMatchResponse(matched=match.matched, missing=match.missing)
