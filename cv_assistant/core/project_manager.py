"""Result-returning facade over the project store and the orchestrator.

Front ends (CLI, web) call into this layer so that every user action ends
in an :class:`ActionResult` instead of an exception.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from ..domain.history import newest_first
from ..domain.resume_schema import format_validation_report, validate_resume_document
from ..errors import CVAssistantError, ValidationError
from ..storage.project_store import ProjectStore
from .orchestrator import ConversationOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Result from a user-facing action."""

    success: bool
    output: str
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> str:
        if self.success:
            return self.output
        return f"Error: {self.error}\n{self.output}" if self.output else f"Error: {self.error}"


def _failed(error: CVAssistantError) -> ActionResult:
    return ActionResult(success=False, output="", error=error.message, data={"code": error.code})


class ProjectManager:
    """High-level project actions bound to one credential and model."""

    def __init__(
        self,
        store: ProjectStore,
        orchestrator: ConversationOrchestrator,
        credential: str = "",
        model: str = "",
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.credential = credential
        self.model = model

    async def _run(self, action: Callable[[], Awaitable[ActionResult]]) -> ActionResult:
        try:
            return await action()
        except CVAssistantError as e:
            logger.info("action failed code=%s message=%s", e.code, e.message)
            return _failed(e)

    async def active_id(self) -> str:
        project = await self.store.ensure_default_project()
        return project.id

    # -- projects ------------------------------------------------------------

    async def list_projects(self) -> ActionResult:
        async def action() -> ActionResult:
            projects = await self.store.get_all()
            active = await self.store.get_active()
            if not projects:
                return ActionResult(success=True, output="No projects yet.", data={"projects": []})
            lines = []
            for project in projects:
                marker = "*" if active is not None and project.id == active.id else " "
                lines.append(f"{marker} {project.name} ({project.id})")
            return ActionResult(
                success=True,
                output="\n".join(lines),
                data={
                    "projects": [p.to_dict() for p in projects],
                    "active_project_id": active.id if active else None,
                },
            )

        return await self._run(action)

    async def create_project(self, name: str, activate: bool = True) -> ActionResult:
        async def action() -> ActionResult:
            project = await self.store.create(name)
            if activate:
                await self.store.set_active(project.id)
            return ActionResult(success=True, output=f"Created project '{project.name}'", data=project.to_dict())

        return await self._run(action)

    async def switch_project(self, ref: str) -> ActionResult:
        """Activate a project by id, 1-based list position, or exact name."""

        async def action() -> ActionResult:
            project_id = await self._resolve(ref)
            project = await self.store.set_active(project_id)
            return ActionResult(success=True, output=f"Switched to '{project.name}'", data=project.to_dict())

        return await self._run(action)

    async def rename_project(self, new_name: str, ref: Optional[str] = None) -> ActionResult:
        async def action() -> ActionResult:
            project_id = await self._resolve(ref) if ref else await self.active_id()
            project = await self.store.rename(project_id, new_name)
            return ActionResult(success=True, output=f"Renamed to '{project.name}'", data=project.to_dict())

        return await self._run(action)

    async def delete_project(self, ref: str) -> ActionResult:
        async def action() -> ActionResult:
            project_id = await self._resolve(ref)
            project = await self.store.get(project_id)
            new_active = await self.store.delete(project_id)
            return ActionResult(
                success=True,
                output=f"Deleted project '{project.name}'",
                data={"deleted": project_id, "active_project_id": new_active},
            )

        return await self._run(action)

    async def _resolve(self, ref: Optional[str]) -> str:
        ref = (ref or "").strip()
        projects = await self.store.get_all()
        if ref.isdigit():
            position = int(ref) - 1
            if 0 <= position < len(projects):
                return projects[position].id
        for project in projects:
            if project.id == ref or project.name == ref:
                return project.id
        # Let the store raise the canonical not-found error.
        return (await self.store.get(ref)).id

    # -- document and history ------------------------------------------------

    async def show_document(self) -> ActionResult:
        async def action() -> ActionResult:
            document = await self.store.load_document(await self.active_id())
            return ActionResult(
                success=True,
                output=json.dumps(document, indent=2, ensure_ascii=False),
                data={"document": document},
            )

        return await self._run(action)

    async def validate_document(self) -> ActionResult:
        async def action() -> ActionResult:
            project = await self.store.get(await self.active_id())
            result = validate_resume_document(await self.store.load_document(project.id))
            return ActionResult(
                success=result.is_valid,
                output=format_validation_report(project.name, result),
                error=None if result.is_valid else f"{len(result.errors)} validation error(s)",
                data={"errors": result.errors},
            )

        return await self._run(action)

    async def list_history(self) -> ActionResult:
        async def action() -> ActionResult:
            entries = newest_first(await self.store.history(await self.active_id()).entries())
            lines = []
            for position, entry in enumerate(entries, 1):
                marker = "*" if entry.is_latest else " "
                lines.append(f"{marker} {position}. {entry.timestamp}  {entry.message}")
            return ActionResult(
                success=True,
                output="\n".join(lines) or "No history yet.",
                data={"entries": [entry.to_dict() for entry in entries]},
            )

        return await self._run(action)

    async def revert(self, ref: str) -> ActionResult:
        """Revert to a history entry by timestamp or newest-first position."""

        async def action() -> ActionResult:
            history = self.store.history(await self.active_id())
            timestamp = ref.strip()
            if timestamp.isdigit():
                entries = newest_first(await history.entries())
                position = int(timestamp) - 1
                if not 0 <= position < len(entries):
                    raise ValidationError(f"Invalid history number. Use 1-{len(entries)}")
                timestamp = entries[position].timestamp
            await history.revert(timestamp)
            return ActionResult(success=True, output=f"Reverted to version {timestamp}", data={"timestamp": timestamp})

        return await self._run(action)

    async def reset(self) -> ActionResult:
        async def action() -> ActionResult:
            entry = await self.store.reset_project(await self.active_id())
            return ActionResult(success=True, output="Project reset to the template", data=entry.to_dict())

        return await self._run(action)

    async def import_document(self, raw_json: str) -> ActionResult:
        async def action() -> ActionResult:
            entry = await self.orchestrator.import_document(await self.active_id(), raw_json)
            return ActionResult(success=True, output="Imported resume data", data=entry.to_dict())

        return await self._run(action)

    async def export_document(self) -> ActionResult:
        return await self.show_document()

    # -- completion service --------------------------------------------------

    async def chat(self, message: str) -> ActionResult:
        async def action() -> ActionResult:
            project_id = await self.active_id()
            result = await self.orchestrator.send_message(project_id, message, self.credential, self.model)
            data = {
                "applied": result.applied,
                "messages": [m.to_dict() for m in result.messages],
                "timestamp": result.history_entry.timestamp if result.history_entry else None,
            }
            if result.success:
                return ActionResult(success=True, output=result.reply, data=data)
            error = result.error.message if result.error else "Unknown error"
            if result.error is not None:
                data["code"] = result.error.code
            return ActionResult(success=False, output=result.reply, error=error, data=data)

        return await self._run(action)

    async def match_job(self, job_description: str) -> ActionResult:
        async def action() -> ActionResult:
            match = await self.orchestrator.analyze_job_description(
                await self.active_id(), job_description, self.credential, self.model
            )
            lines = ["## Matched"]
            lines.extend(f"- {skill}" for skill in match.matched or ["(none)"])
            lines.append("")
            lines.append("## Missing")
            lines.extend(f"- {skill}" for skill in match.missing or ["(none)"])
            return ActionResult(
                success=True,
                output="\n".join(lines),
                data={"matched": match.matched, "missing": match.missing},
            )

        return await self._run(action)

    # -- diagnostics ---------------------------------------------------------

    async def check_integrity(self) -> ActionResult:
        async def action() -> ActionResult:
            report = await self.store.check_integrity()
            lines = [f"Integrity: {'OK' if report.is_valid else 'FAILED'}"]
            lines.extend(f"  error: {e}" for e in report.errors)
            lines.extend(f"  warning: {w}" for w in report.warnings)
            return ActionResult(
                success=report.is_valid,
                output="\n".join(lines),
                error=None if report.is_valid else f"{len(report.errors)} integrity error(s)",
                data={"errors": report.errors, "warnings": report.warnings},
            )

        return await self._run(action)
