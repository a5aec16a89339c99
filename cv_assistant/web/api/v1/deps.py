"""Dependency providers for v1 API."""

from __future__ import annotations

from fastapi import Request

from ....config import AppConfig
from ....core.orchestrator import ConversationOrchestrator
from ....storage.project_store import ProjectStore


def get_store(request: Request) -> ProjectStore:
    """Access shared project store from app state."""
    return request.app.state.project_store


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    return request.app.state.orchestrator


def get_config(request: Request) -> AppConfig:
    return request.app.state.config
