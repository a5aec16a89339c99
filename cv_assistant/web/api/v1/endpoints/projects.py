"""Project endpoints for Web API v1."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from .....core.orchestrator import ConversationOrchestrator
from .....domain.projects import Project
from .....storage.project_store import ProjectStore
from ..deps import get_orchestrator, get_store

router = APIRouter(prefix="/projects", tags=["projects"])


class ProjectResponse(BaseModel):
    id: str
    name: str
    created_at: str
    updated_at: str
    last_chat_message: Optional[str] = None
    is_active: bool = False


class ProjectListResponse(BaseModel):
    projects: List[ProjectResponse]
    active_project_id: Optional[str] = None


class CreateProjectRequest(BaseModel):
    name: str
    activate: bool = Field(default=False)


class RenameProjectRequest(BaseModel):
    name: str


class DeleteProjectResponse(BaseModel):
    deleted: str
    active_project_id: Optional[str] = None


class DocumentResponse(BaseModel):
    project_id: str
    document: Dict[str, Any]


class ImportDocumentRequest(BaseModel):
    document: Dict[str, Any]


class CommitResponse(BaseModel):
    timestamp: str
    message: str
    document: Dict[str, Any]


class IntegrityResponse(BaseModel):
    is_valid: bool
    errors: List[str]
    warnings: List[str]


def _project_response(project: Project, active_id: Optional[str]) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        name=project.name,
        created_at=project.created_at,
        updated_at=project.updated_at,
        last_chat_message=project.last_chat_message,
        is_active=project.id == active_id,
    )


async def _active_id(store: ProjectStore) -> Optional[str]:
    active = await store.get_active()
    return active.id if active else None


@router.get("", response_model=ProjectListResponse)
async def list_projects(store: ProjectStore = Depends(get_store)) -> ProjectListResponse:
    projects = await store.get_all()
    active_id = await _active_id(store)
    return ProjectListResponse(
        projects=[_project_response(p, active_id) for p in projects],
        active_project_id=active_id,
    )


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    request: CreateProjectRequest,
    store: ProjectStore = Depends(get_store),
) -> ProjectResponse:
    project = await store.create(request.name)
    if request.activate:
        await store.set_active(project.id)
    return _project_response(project, await _active_id(store))


@router.get("/integrity", response_model=IntegrityResponse)
async def check_integrity(store: ProjectStore = Depends(get_store)) -> IntegrityResponse:
    report = await store.check_integrity()
    return IntegrityResponse(is_valid=report.is_valid, errors=report.errors, warnings=report.warnings)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: str, store: ProjectStore = Depends(get_store)) -> ProjectResponse:
    project = await store.get(project_id)
    return _project_response(project, await _active_id(store))


@router.patch("/{project_id}", response_model=ProjectResponse)
async def rename_project(
    project_id: str,
    request: RenameProjectRequest,
    store: ProjectStore = Depends(get_store),
) -> ProjectResponse:
    project = await store.rename(project_id, request.name)
    return _project_response(project, await _active_id(store))


@router.delete("/{project_id}", response_model=DeleteProjectResponse)
async def delete_project(project_id: str, store: ProjectStore = Depends(get_store)) -> DeleteProjectResponse:
    active_id = await store.delete(project_id)
    return DeleteProjectResponse(deleted=project_id, active_project_id=active_id)


@router.post("/{project_id}/activate", response_model=ProjectResponse)
async def activate_project(project_id: str, store: ProjectStore = Depends(get_store)) -> ProjectResponse:
    project = await store.set_active(project_id)
    return _project_response(project, project.id)


@router.get("/{project_id}/document", response_model=DocumentResponse)
async def get_document(project_id: str, store: ProjectStore = Depends(get_store)) -> DocumentResponse:
    document = await store.load_document(project_id)
    return DocumentResponse(project_id=project_id, document=document)


@router.put("/{project_id}/document", response_model=CommitResponse)
async def import_document(
    project_id: str,
    request: ImportDocumentRequest,
    store: ProjectStore = Depends(get_store),
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
) -> CommitResponse:
    await store.get(project_id)
    entry = await orchestrator.import_document(project_id, request.document)
    return CommitResponse(timestamp=entry.timestamp, message=entry.message, document=entry.snapshot)


@router.post("/{project_id}/reset", response_model=CommitResponse)
async def reset_project(project_id: str, store: ProjectStore = Depends(get_store)) -> CommitResponse:
    entry = await store.reset_project(project_id)
    return CommitResponse(timestamp=entry.timestamp, message=entry.message, document=entry.snapshot)
