"""Tests for the ProjectManager action facade."""

from __future__ import annotations

import json

import pytest

from cv_assistant.core.orchestrator import ConversationOrchestrator
from cv_assistant.core.project_manager import ActionResult, ProjectManager
from cv_assistant.domain.resume_schema import default_resume_document
from cv_assistant.storage import ProjectStore, keys


@pytest.fixture
def manager(store: ProjectStore, provider_factory) -> ProjectManager:
    orchestrator = ConversationOrchestrator(store, provider_factory)
    return ProjectManager(store, orchestrator, credential="key", model="model")


def test_action_result_to_message():
    assert ActionResult(success=True, output="done").to_message() == "done"
    assert ActionResult(success=False, output="", error="boom").to_message() == "Error: boom"
    assert ActionResult(success=False, output="ctx", error="boom").to_message() == "Error: boom\nctx"


@pytest.mark.asyncio
async def test_first_action_bootstraps_default_project(manager: ProjectManager):
    result = await manager.show_document()
    assert result.success
    assert result.data["document"] == default_resume_document()
    listing = await manager.list_projects()
    assert listing.output == f"* My Resume ({listing.data['active_project_id']})"


@pytest.mark.asyncio
async def test_create_switch_rename_delete(manager: ProjectManager, store: ProjectStore):
    await manager.active_id()
    created = await manager.create_project("Data CV")
    assert created.success
    assert (await store.get_active()).name == "Data CV"

    assert (await manager.switch_project("1")).data["name"] == "My Resume"
    assert (await manager.switch_project("Data CV")).success

    renamed = await manager.rename_project("Data Engineering CV")
    assert renamed.output == "Renamed to 'Data Engineering CV'"

    deleted = await manager.delete_project("Data Engineering CV")
    assert deleted.success
    assert (await store.get_active()).name == "My Resume"


@pytest.mark.asyncio
async def test_errors_become_failed_results(manager: ProjectManager):
    await manager.active_id()
    duplicate = await manager.create_project("my resume")
    assert not duplicate.success
    assert duplicate.error == "A project with this name already exists"
    assert duplicate.data["code"] == "DUPLICATE_NAME"

    missing = await manager.switch_project("project_nope")
    assert not missing.success
    assert missing.data["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_chat_then_history_and_revert(manager: ProjectManager, provider):
    provider.queue({"patches": [{"op": "replace", "path": "/name", "value": "Ada"}], "message": "Renamed."})

    turn = await manager.chat("Call me Ada")
    assert turn.success
    assert turn.data["applied"] is True

    history = await manager.list_history()
    assert history.output.splitlines()[0].startswith("* 1.")
    assert history.output.splitlines()[0].endswith("Call me Ada")

    reverted = await manager.revert("2")
    assert reverted.success
    assert (await manager.show_document()).data["document"]["name"] == "Your Name"

    assert not (await manager.revert("9")).success


@pytest.mark.asyncio
async def test_chat_failure_carries_code(manager: ProjectManager):
    manager.credential = ""
    result = await manager.chat("hello")
    assert not result.success
    assert result.data["code"] == "CREDENTIAL_MISSING"


@pytest.mark.asyncio
async def test_chat_storage_failure_returns_failed_result(manager: ProjectManager, storage):
    storage.fail_on = lambda op, key: op == "set" and key == keys.PROJECTS_INDEX
    result = await manager.chat("hello")
    assert not result.success
    assert result.data["code"] == "STORAGE_ERROR"


@pytest.mark.asyncio
async def test_import_validate_and_reset(manager: ProjectManager):
    doc = default_resume_document()
    doc["title"] = "Principal Engineer"
    assert (await manager.import_document(json.dumps(doc))).success

    report = await manager.validate_document()
    assert report.success
    assert "## Validation: PASS -- My Resume" in report.output

    bad = await manager.import_document('{"name": "x"}')
    assert not bad.success

    assert (await manager.reset()).success
    assert (await manager.show_document()).data["document"]["title"] == "Software Engineer"


@pytest.mark.asyncio
async def test_match_job_formats_sections(manager: ProjectManager, provider):
    provider.queue({"matched": ["Python"], "missing": []})
    result = await manager.match_job("Looking for a Python engineer to build data pipelines at scale.")
    assert result.success
    assert "## Matched\n- Python" in result.output
    assert "## Missing\n- (none)" in result.output


@pytest.mark.asyncio
async def test_check_integrity(manager: ProjectManager):
    await manager.active_id()
    result = await manager.check_integrity()
    assert result.success
    assert result.output.startswith("Integrity: OK")
