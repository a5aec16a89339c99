"""Namespaced project storage: index, per-project document, transcript and history."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..domain.history import HistoryEntry, append_entry, latest_entry, normalize_latest, utc_now
from ..domain.projects import (
    DEFAULT_PROJECT_NAME,
    ChatMessage,
    Project,
    ProjectsIndex,
    find_name_conflict,
    is_valid_index_record,
    is_valid_project_record,
    needs_migration,
    next_active_id,
    preview,
    utc_now_iso,
)
from ..domain.resume_schema import (
    default_resume_document,
    validate_chat_history,
    validate_project_name,
    validate_resume_document,
    validate_resume_history,
)
from ..errors import DuplicateNameError, NotFoundError, StorageError, ValidationError
from . import keys
from .history_store import HistoryStore
from .kv import KeyValueStore, dump_json, load_json

logger = logging.getLogger(__name__)

MIGRATED_VERSION_MESSAGE = "Migrated resume data"


@dataclass
class ProjectData:
    """Everything a project owns, loaded together."""

    document: Dict[str, Any]
    chat_history: List[ChatMessage] = field(default_factory=list)
    history: List[HistoryEntry] = field(default_factory=list)

    @property
    def current_version(self) -> Optional[HistoryEntry]:
        return latest_entry(self.history)


@dataclass
class MigrationResult:
    success: bool
    project_id: Optional[str] = None
    messages: List[str] = field(default_factory=list)


@dataclass
class IntegrityReport:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class ProjectStore:
    """CRUD over projects persisted through an injected :class:`KeyValueStore`.

    The index and each data key are read-modify-written as whole values. The
    store assumes a single active editor; it holds no locks.
    """

    def __init__(self, storage: KeyValueStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.storage = storage
        self._clock = clock

    # -- index ---------------------------------------------------------------

    async def _read_index(self) -> Optional[ProjectsIndex]:
        try:
            raw = load_json(await self.storage.get(keys.PROJECTS_INDEX))
        except ValueError as e:
            raise StorageError("Projects index is not valid JSON") from e
        if raw is None:
            return None
        if not is_valid_index_record(raw):
            raise StorageError("Projects index has invalid structure")
        return ProjectsIndex.from_dict(raw)

    async def _write_index(self, index: ProjectsIndex) -> None:
        await self.storage.set(keys.PROJECTS_INDEX, dump_json(index.to_dict()))

    async def _index(self) -> ProjectsIndex:
        return await self._read_index() or ProjectsIndex()

    # -- queries -------------------------------------------------------------

    async def get_all(self) -> List[Project]:
        return list((await self._index()).projects)

    async def get(self, project_id: str) -> Project:
        project = (await self._index()).find(project_id)
        if project is None:
            raise NotFoundError(f"Project '{project_id}' not found", {"project_id": project_id})
        return project

    async def get_active(self) -> Optional[Project]:
        """Active project; a dangling active id falls back to the first project."""
        index = await self._index()
        if index.active_project_id:
            active = index.find(index.active_project_id)
            if active is not None:
                return active
        if not index.projects:
            return None
        if index.active_project_id is not None:
            logger.warning("active project %s missing, falling back to first project", index.active_project_id)
        index.active_project_id = index.projects[0].id
        await self._write_index(index)
        return index.projects[0]

    def history(self, project_id: str) -> HistoryStore:
        return HistoryStore(self.storage, project_id, clock=self._clock)

    async def load_document(self, project_id: str) -> Dict[str, Any]:
        await self.get(project_id)
        document = await self._load_key(keys.resume_key(project_id), "resume data")
        if document is None:
            latest = await self.history(project_id).latest()
            return copy.deepcopy(latest.snapshot) if latest else default_resume_document()
        if not isinstance(document, dict):
            raise StorageError(f"Resume data for project '{project_id}' must be an object")
        return document

    async def load_chat(self, project_id: str) -> List[ChatMessage]:
        await self.get(project_id)
        raw = await self._load_key(keys.chat_key(project_id), "chat history") or []
        result = validate_chat_history(raw)
        if not result.is_valid:
            raise StorageError(f"Chat history for project '{project_id}' is invalid", {"errors": result.errors})
        return [ChatMessage.from_dict(item) for item in raw]

    async def load_data(self, project_id: str) -> ProjectData:
        """Load a project's bundle, seeding an "Initial version" if history is empty."""
        document = await self.load_document(project_id)
        chat = await self.load_chat(project_id)
        history_store = self.history(project_id)
        history = await history_store.entries()
        if not history:
            await history_store.seed(document)
            history = await history_store.entries()
        return ProjectData(document=document, chat_history=chat, history=history)

    async def _load_key(self, key: str, label: str) -> Any:
        try:
            return load_json(await self.storage.get(key))
        except ValueError as e:
            raise StorageError(f"Stored {label} under '{key}' is not valid JSON") from e

    # -- mutations -----------------------------------------------------------

    async def create(self, name: str, initial_document: Optional[Dict[str, Any]] = None) -> Project:
        """Create a project seeded with *initial_document* (or the template).

        The first project ever created becomes the active one. Partially
        written data is removed when any write fails.
        """
        checked = validate_project_name(name)
        if not checked.is_valid:
            raise ValidationError(checked.errors[0], checked.errors)

        index = await self._index()
        if find_name_conflict(index.projects, name):
            raise DuplicateNameError(name.strip())

        project = Project.new(name)
        document = copy.deepcopy(initial_document) if initial_document is not None else default_resume_document()
        try:
            await self.storage.set(keys.chat_key(project.id), dump_json([]))
            await self.history(project.id).seed(document)
        except StorageError:
            await self._discard_data(project.id)
            raise

        index.projects.append(project)
        if len(index.projects) == 1:
            index.active_project_id = project.id
        try:
            await self._write_index(index)
        except StorageError as e:
            await self._discard_data(project.id)
            raise StorageError(f"Failed to save projects index: {e.message}") from e

        logger.info("project created id=%s name=%r", project.id, project.name)
        return project

    async def rename(self, project_id: str, new_name: str) -> Project:
        checked = validate_project_name(new_name)
        if not checked.is_valid:
            raise ValidationError(checked.errors[0], checked.errors)

        index = await self._index()
        project = index.find(project_id)
        if project is None:
            raise NotFoundError(f"Project '{project_id}' not found", {"project_id": project_id})
        if find_name_conflict(index.projects, new_name, exclude_id=project_id):
            raise DuplicateNameError(new_name.strip())

        project.name = new_name.strip()
        project.updated_at = utc_now_iso()
        await self._write_index(index)
        return project

    async def delete(self, project_id: str) -> Optional[str]:
        """Delete a project and everything it owns. Returns the new active id."""
        index = await self._index()
        if index.find(project_id) is None:
            raise NotFoundError(f"Project '{project_id}' not found", {"project_id": project_id})

        index.active_project_id = next_active_id(index.projects, project_id, index.active_project_id)
        index.projects = [p for p in index.projects if p.id != project_id]
        await self._write_index(index)

        for key in keys.project_keys(project_id):
            await self.storage.delete(key)
        logger.info("project deleted id=%s active=%s", project_id, index.active_project_id)
        return index.active_project_id

    async def set_active(self, project_id: str) -> Project:
        index = await self._index()
        project = index.find(project_id)
        if project is None:
            raise NotFoundError(f"Project '{project_id}' not found", {"project_id": project_id})
        index.active_project_id = project_id
        await self._write_index(index)
        return project

    async def append_messages(self, project_id: str, messages: Sequence[ChatMessage]) -> List[ChatMessage]:
        """Append to the transcript and refresh the project's preview line."""
        transcript = await self.load_chat(project_id)
        transcript.extend(messages)
        await self.storage.set(keys.chat_key(project_id), dump_json([m.to_dict() for m in transcript]))
        if messages:
            await self.update_last_chat_message(project_id, messages[-1].content)
        return transcript

    async def update_last_chat_message(self, project_id: str, message: Optional[str]) -> Project:
        index = await self._index()
        project = index.find(project_id)
        if project is None:
            raise NotFoundError(f"Project '{project_id}' not found", {"project_id": project_id})
        project.last_chat_message = preview(message)
        project.updated_at = utc_now_iso()
        await self._write_index(index)
        return project

    async def touch(self, project_id: str) -> None:
        index = await self._index()
        project = index.find(project_id)
        if project is not None:
            project.updated_at = utc_now_iso()
            await self._write_index(index)

    async def reset_project(self, project_id: str) -> HistoryEntry:
        """Back to the template document with an empty transcript and fresh history."""
        await self.get(project_id)
        await self.storage.set(keys.chat_key(project_id), dump_json([]))
        entry = await self.history(project_id).reset(default_resume_document())
        await self.update_last_chat_message(project_id, None)
        return entry

    async def clear_all(self) -> None:
        index = await self._read_index()
        if index is not None:
            for project in index.projects:
                for key in keys.project_keys(project.id):
                    await self.storage.delete(key)
        await self.storage.delete(keys.PROJECTS_INDEX)

    async def _discard_data(self, project_id: str) -> None:
        for key in keys.project_keys(project_id):
            try:
                await self.storage.delete(key)
            except StorageError:
                logger.exception("rollback failed to delete %s", key)

    # -- first run / legacy --------------------------------------------------

    async def has_legacy_data(self) -> bool:
        return (
            await self.storage.get(keys.LEGACY_RESUME_DATA) is not None
            or await self.storage.get(keys.LEGACY_RESUME_HISTORY) is not None
        )

    async def migrate_legacy(self) -> MigrationResult:
        """Wrap pre-namespacing single-project data into a "My Resume" project.

        Idempotent: without legacy keys, or when projects already exist, this
        reports success and does nothing. Legacy keys are removed only after
        the new project is fully persisted.
        """
        has_legacy = await self.has_legacy_data()
        index = await self._read_index()
        if not has_legacy:
            return MigrationResult(success=True, messages=["No legacy data found"])
        if not needs_migration(index, has_legacy):
            return MigrationResult(success=True, messages=["Projects already exist, skipping migration"])

        messages: List[str] = []
        document = await self._load_legacy(keys.LEGACY_RESUME_DATA, "resume data", messages)
        if document is not None and not isinstance(document, dict):
            messages.append("Legacy resume data is not an object; using the default template")
            document = None
        raw_history = await self._load_legacy(keys.LEGACY_RESUME_HISTORY, "resume history", messages)

        history: List[HistoryEntry] = []
        if raw_history is not None:
            checked = validate_resume_history(raw_history)
            if isinstance(raw_history, list) and all(isinstance(item, dict) for item in raw_history):
                try:
                    history = normalize_latest([HistoryEntry.from_dict(item) for item in raw_history])
                except (KeyError, TypeError):
                    history = []
            if not checked.is_valid:
                messages.append("Legacy resume history had defects: " + "; ".join(checked.errors))

        if document is None:
            current = latest_entry(history)
            document = copy.deepcopy(current.snapshot) if current else default_resume_document()

        project: Optional[Project] = None
        try:
            project = await self.create(DEFAULT_PROJECT_NAME, document)
            if history:
                current = latest_entry(history)
                if current is None or current.snapshot != document:
                    history = append_entry(history, document, MIGRATED_VERSION_MESSAGE, clock=self._clock)
                await self.storage.set(
                    keys.history_key(project.id),
                    dump_json([entry.to_dict() for entry in history]),
                )
        except (StorageError, ValidationError, DuplicateNameError) as e:
            logger.error("legacy migration failed: %s", e)
            if project is not None:
                await self._drop_created(project.id)
            messages.append(f"Migration failed: {e}")
            return MigrationResult(success=False, messages=messages)

        for key in (keys.LEGACY_RESUME_DATA, keys.LEGACY_RESUME_HISTORY):
            try:
                await self.storage.delete(key)
            except StorageError as e:
                messages.append(f"Failed to clean up legacy key '{key}': {e.message}")

        logger.info("legacy data migrated into project %s", project.id)
        return MigrationResult(success=True, project_id=project.id, messages=messages)

    async def _drop_created(self, project_id: str) -> None:
        """Undo a create whose follow-up writes failed, so a retry starts clean."""
        try:
            index = await self._index()
            index.projects = [p for p in index.projects if p.id != project_id]
            if index.active_project_id == project_id:
                index.active_project_id = index.projects[0].id if index.projects else None
            await self._write_index(index)
        except StorageError:
            logger.exception("rollback failed to remove project %s from index", project_id)
        await self._discard_data(project_id)

    async def _load_legacy(self, key: str, label: str, messages: List[str]) -> Any:
        try:
            return load_json(await self.storage.get(key))
        except ValueError as e:
            messages.append(f"Failed to parse legacy {label}: {e}")
            return None

    async def ensure_default_project(self) -> Project:
        """First-run bootstrap: migrate legacy data, else create "My Resume"."""
        result = await self.migrate_legacy()
        if not result.success:
            logger.warning("migration failed: %s", result.messages)
        active = await self.get_active()
        if active is not None:
            return active
        return await self.create(DEFAULT_PROJECT_NAME)

    # -- diagnostics ---------------------------------------------------------

    async def check_integrity(self) -> IntegrityReport:
        """Cross-check the index against every stored data key."""
        errors: List[str] = []
        warnings: List[str] = []

        try:
            raw_index = load_json(await self.storage.get(keys.PROJECTS_INDEX))
        except ValueError:
            return IntegrityReport(is_valid=False, errors=["Projects index is not valid JSON"])
        if raw_index is None:
            return IntegrityReport(is_valid=True, warnings=["No projects index found"])
        if not is_valid_index_record(raw_index):
            return IntegrityReport(is_valid=False, errors=["Projects index has invalid structure"])

        known_ids = set()
        for position, record in enumerate(raw_index["projects"]):
            if not is_valid_project_record(record):
                errors.append(f"Project {position} has invalid structure")
                continue
            project = Project.from_dict(record)
            known_ids.add(project.id)
            label = f"Project {project.name} ({project.id})"
            checks = (
                (keys.resume_key(project.id), "resume data", validate_resume_document),
                (keys.chat_key(project.id), "chat history", validate_chat_history),
                (keys.history_key(project.id), "resume history", validate_resume_history),
            )
            for key, what, validator in checks:
                raw = await self.storage.get(key)
                if raw is None:
                    warnings.append(f"{label} missing {what}")
                    continue
                try:
                    value = load_json(raw)
                except ValueError:
                    errors.append(f"{label} {what} is not valid JSON")
                    continue
                result = validator(value)
                if not result.is_valid:
                    errors.append(f"{label} has invalid {what}: {', '.join(result.errors)}")

        for key in await self.storage.keys():
            owner = keys.owner_of(key)
            if owner is not None and owner not in known_ids:
                warnings.append(f"Orphaned data found: {key}")

        active = raw_index.get("activeProjectId")
        if active and active not in known_ids:
            errors.append("Active project ID does not correspond to any existing project")

        return IntegrityReport(is_valid=not errors, errors=errors, warnings=warnings)
