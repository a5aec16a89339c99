"""Project and transcript records plus pure helpers over the projects index."""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .history import format_timestamp, utc_now

DEFAULT_PROJECT_NAME = "My Resume"
PREVIEW_LENGTH = 100

_ID_ALPHABET = string.ascii_lowercase + string.digits


def utc_now_iso() -> str:
    return format_timestamp(utc_now())


def generate_project_id() -> str:
    """Opaque id in the ``project_<epoch ms>_<9 base36 chars>`` style."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"project_{int(time.time() * 1000)}_{suffix}"


@dataclass
class Project:
    id: str
    name: str
    created_at: str
    updated_at: str
    last_chat_message: Optional[str] = None

    @classmethod
    def new(cls, name: str, project_id: Optional[str] = None) -> "Project":
        now = utc_now_iso()
        return cls(id=project_id or generate_project_id(), name=name.strip(), created_at=now, updated_at=now)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.last_chat_message is not None:
            data["lastChatMessage"] = self.last_chat_message
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=data["id"],
            name=data["name"],
            created_at=data["createdAt"],
            updated_at=data["updatedAt"],
            last_chat_message=data.get("lastChatMessage"),
        )


@dataclass
class ProjectsIndex:
    projects: List[Project] = field(default_factory=list)
    active_project_id: Optional[str] = None

    def find(self, project_id: str) -> Optional[Project]:
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projects": [project.to_dict() for project in self.projects],
            "activeProjectId": self.active_project_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectsIndex":
        return cls(
            projects=[Project.from_dict(item) for item in data.get("projects", [])],
            active_project_id=data.get("activeProjectId"),
        )


@dataclass
class ChatMessage:
    role: str  # "user" | "assistant" | "system"
    content: str
    timestamp: Optional[str] = None

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role="user", content=content, timestamp=utc_now_iso())

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(role="assistant", content=content, timestamp=utc_now_iso())

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role="system", content=content, timestamp=utc_now_iso())

    def to_dict(self) -> Dict[str, Any]:
        data = {"role": self.role, "content": self.content}
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(role=data["role"], content=data["content"], timestamp=data.get("timestamp"))


def is_valid_project_record(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and isinstance(data.get("id"), str)
        and isinstance(data.get("name"), str)
        and isinstance(data.get("createdAt"), str)
        and isinstance(data.get("updatedAt"), str)
        and bool(data["id"])
        and bool(data["name"])
    )


def is_valid_index_record(data: Any) -> bool:
    if not isinstance(data, dict) or not isinstance(data.get("projects"), list):
        return False
    active = data.get("activeProjectId")
    if active is not None and not isinstance(active, str):
        return False
    return all(is_valid_project_record(item) for item in data["projects"])


def normalize_name(name: str) -> str:
    """Comparison key for case-insensitive, whitespace-trimmed uniqueness."""
    return name.strip().casefold()


def find_name_conflict(
    projects: Sequence[Project],
    name: str,
    exclude_id: Optional[str] = None,
) -> Optional[Project]:
    """Return the project whose name collides with *name*, if any."""
    key = normalize_name(name)
    for project in projects:
        if project.id != exclude_id and normalize_name(project.name) == key:
            return project
    return None


def next_active_id(projects: Sequence[Project], removed_id: str, active_id: Optional[str]) -> Optional[str]:
    """Active id after *removed_id* is deleted (first remaining by creation order)."""
    if active_id != removed_id:
        return active_id
    remaining = [p for p in projects if p.id != removed_id]
    return remaining[0].id if remaining else None


def needs_migration(index: Optional[ProjectsIndex], has_legacy: bool) -> bool:
    """Legacy data is migrated only into an empty store."""
    return has_legacy and (index is None or not index.projects)


def preview(message: Optional[str]) -> Optional[str]:
    if not message:
        return None
    return message[:PREVIEW_LENGTH]
