"""Persisted key layout."""

from __future__ import annotations

PROJECTS_INDEX = "projects_index"
RESUME_DATA_PREFIX = "resume_"
CHAT_HISTORY_PREFIX = "chat_history_"
RESUME_HISTORY_PREFIX = "resume_history_"
LEGACY_RESUME_DATA = "resumeData"
LEGACY_RESUME_HISTORY = "resumeHistory"

# Longest prefix first: "resume_history_x" must not be read as "resume_" + "history_x".
PROJECT_KEY_PREFIXES = (RESUME_HISTORY_PREFIX, CHAT_HISTORY_PREFIX, RESUME_DATA_PREFIX)


def resume_key(project_id: str) -> str:
    return f"{RESUME_DATA_PREFIX}{project_id}"


def chat_key(project_id: str) -> str:
    return f"{CHAT_HISTORY_PREFIX}{project_id}"


def history_key(project_id: str) -> str:
    return f"{RESUME_HISTORY_PREFIX}{project_id}"


def project_keys(project_id: str) -> tuple:
    return (resume_key(project_id), chat_key(project_id), history_key(project_id))


def owner_of(key: str):
    """Project id a data key belongs to, or ``None`` for non-project keys."""
    for prefix in PROJECT_KEY_PREFIXES:
        if key.startswith(prefix):
            return key[len(prefix):]
    return None
