"""Conversation orchestration and the project action facade."""

from .observability import TurnObserver
from .orchestrator import ConversationOrchestrator, ProviderFactory, TurnResult, TurnState
from .project_manager import ActionResult, ProjectManager
from .replies import JobMatchResult

__all__ = [
    "ActionResult",
    "ConversationOrchestrator",
    "JobMatchResult",
    "ProjectManager",
    "ProviderFactory",
    "TurnObserver",
    "TurnResult",
    "TurnState",
]
