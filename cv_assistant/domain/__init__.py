"""Pure domain layer: schema validation, patch engine, history and project records."""

from .history import HistoryEntry, append_entry, latest_entry, mark_latest
from .patches import PatchOperation, PatchResult, apply_patches, parse_patch_list, parse_pointer
from .projects import ChatMessage, Project, ProjectsIndex, find_name_conflict
from .resume_schema import (
    ValidationResult,
    default_resume_document,
    validate_chat_history,
    validate_project_name,
    validate_resume_document,
    validate_resume_history,
)

__all__ = [
    "ChatMessage",
    "HistoryEntry",
    "PatchOperation",
    "PatchResult",
    "Project",
    "ProjectsIndex",
    "ValidationResult",
    "append_entry",
    "apply_patches",
    "default_resume_document",
    "find_name_conflict",
    "latest_entry",
    "mark_latest",
    "parse_patch_list",
    "parse_pointer",
    "validate_chat_history",
    "validate_project_name",
    "validate_resume_document",
    "validate_resume_history",
]
