"""Tests for ProjectStore: CRUD, rollback, migration, integrity."""

from __future__ import annotations

import pytest

from cv_assistant.domain.history import HistoryEntry
from cv_assistant.domain.projects import ChatMessage
from cv_assistant.domain.resume_schema import default_resume_document
from cv_assistant.errors import DuplicateNameError, NotFoundError, StorageError, ValidationError
from cv_assistant.storage import InMemoryKeyValueStore, ProjectStore, dump_json, load_json
from cv_assistant.storage import keys
from cv_assistant.storage.project_store import MIGRATED_VERSION_MESSAGE

# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


class TestCreate:
    """Tests for ProjectStore.create()."""

    @pytest.mark.asyncio
    async def test_first_project_becomes_active(self, store: ProjectStore):
        project = await store.create("  Backend CV  ")
        assert project.name == "Backend CV"
        assert (await store.get_active()).id == project.id

    @pytest.mark.asyncio
    async def test_second_project_does_not_steal_active(self, store: ProjectStore):
        first = await store.create("A")
        await store.create("B")
        assert (await store.get_active()).id == first.id
        assert [p.name for p in await store.get_all()] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_seeds_template_history_and_empty_chat(self, store: ProjectStore):
        project = await store.create("A")
        data = await store.load_data(project.id)
        assert data.document == default_resume_document()
        assert data.chat_history == []
        assert len(data.history) == 1
        assert data.current_version.message == "Initial version"
        assert data.current_version.snapshot == data.document

    @pytest.mark.asyncio
    async def test_initial_document(self, store: ProjectStore):
        doc = default_resume_document()
        doc["name"] = "Grace Hopper"
        project = await store.create("Imported", doc)
        assert (await store.load_document(project.id))["name"] == "Grace Hopper"

    @pytest.mark.asyncio
    async def test_duplicate_name_is_case_insensitive(self, store: ProjectStore):
        await store.create("Backend CV")
        with pytest.raises(DuplicateNameError) as exc:
            await store.create(" backend cv")
        assert exc.value.message == "A project with this name already exists"
        assert len(await store.get_all()) == 1

    @pytest.mark.asyncio
    async def test_invalid_name(self, store: ProjectStore):
        with pytest.raises(ValidationError):
            await store.create("")
        with pytest.raises(ValidationError):
            await store.create("bad/name")

    @pytest.mark.asyncio
    async def test_index_write_failure_discards_data(self):
        storage = InMemoryKeyValueStore(fail_on=lambda op, key: op == "set" and key == keys.PROJECTS_INDEX)
        store = ProjectStore(storage)
        with pytest.raises(StorageError):
            await store.create("A")
        assert storage.data == {}

    @pytest.mark.asyncio
    async def test_data_write_failure_leaves_index_untouched(self):
        storage = InMemoryKeyValueStore(fail_on=lambda op, key: op == "set" and key.startswith("resume_history_"))
        store = ProjectStore(storage)
        with pytest.raises(StorageError):
            await store.create("A")
        assert await store.get_all() == []
        assert storage.data == {}

    @pytest.mark.asyncio
    async def test_get_unknown(self, store: ProjectStore):
        with pytest.raises(NotFoundError):
            await store.get("project_missing")
        with pytest.raises(NotFoundError):
            await store.load_document("project_missing")


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class TestMutations:
    @pytest.mark.asyncio
    async def test_rename(self, store: ProjectStore):
        project = await store.create("A")
        await store.create("B")
        renamed = await store.rename(project.id, "A (final)")
        assert renamed.name == "A (final)"
        assert (await store.get(project.id)).name == "A (final)"

    @pytest.mark.asyncio
    async def test_rename_to_other_name_conflicts(self, store: ProjectStore):
        project = await store.create("A")
        await store.create("B")
        with pytest.raises(DuplicateNameError):
            await store.rename(project.id, "b")

    @pytest.mark.asyncio
    async def test_rename_to_own_name_in_other_case(self, store: ProjectStore):
        project = await store.create("Backend CV")
        assert (await store.rename(project.id, "backend cv")).name == "backend cv"

    @pytest.mark.asyncio
    async def test_delete_active_reassigns_to_first_remaining(self, store: ProjectStore, storage):
        first = await store.create("A")
        second = await store.create("B")
        third = await store.create("C")
        await store.set_active(second.id)

        new_active = await store.delete(second.id)

        assert new_active == first.id
        assert (await store.get_active()).id == first.id
        assert [p.id for p in await store.get_all()] == [first.id, third.id]
        assert not any(keys.owner_of(k) == second.id for k in storage.data)

    @pytest.mark.asyncio
    async def test_delete_last_project(self, store: ProjectStore, storage):
        project = await store.create("A")
        assert await store.delete(project.id) is None
        assert await store.get_active() is None
        assert list(storage.data) == [keys.PROJECTS_INDEX]

    @pytest.mark.asyncio
    async def test_delete_unknown(self, store: ProjectStore):
        with pytest.raises(NotFoundError):
            await store.delete("project_missing")

    @pytest.mark.asyncio
    async def test_set_active(self, store: ProjectStore):
        await store.create("A")
        second = await store.create("B")
        await store.set_active(second.id)
        assert (await store.get_active()).id == second.id
        with pytest.raises(NotFoundError):
            await store.set_active("project_missing")

    @pytest.mark.asyncio
    async def test_dangling_active_falls_back_to_first(self, store: ProjectStore, storage):
        first = await store.create("A")
        index = load_json(storage.data[keys.PROJECTS_INDEX])
        index["activeProjectId"] = "project_gone"
        storage.data[keys.PROJECTS_INDEX] = dump_json(index)

        assert (await store.get_active()).id == first.id
        assert load_json(storage.data[keys.PROJECTS_INDEX])["activeProjectId"] == first.id

    @pytest.mark.asyncio
    async def test_append_messages_updates_preview(self, store: ProjectStore):
        project = await store.create("A")
        await store.append_messages(project.id, [ChatMessage.user("hi"), ChatMessage.assistant("y" * 150)])
        chat = await store.load_chat(project.id)
        assert [m.role for m in chat] == ["user", "assistant"]
        assert (await store.get(project.id)).last_chat_message == "y" * 100

    @pytest.mark.asyncio
    async def test_reset_project(self, store: ProjectStore):
        project = await store.create("A")
        await store.append_messages(project.id, [ChatMessage.user("hi")])
        doc = default_resume_document()
        doc["name"] = "Changed"
        await store.history(project.id).commit(doc, "change")

        entry = await store.reset_project(project.id)

        data = await store.load_data(project.id)
        assert data.document == default_resume_document()
        assert data.chat_history == []
        assert data.history == [entry]
        assert (await store.get(project.id)).last_chat_message is None

    @pytest.mark.asyncio
    async def test_corrupt_index_raises(self, store: ProjectStore, storage):
        storage.data[keys.PROJECTS_INDEX] = b"{broken"
        with pytest.raises(StorageError):
            await store.get_all()

    @pytest.mark.asyncio
    async def test_clear_all(self, store: ProjectStore, storage):
        await store.create("A")
        await store.create("B")
        await store.clear_all()
        assert storage.data == {}


# ---------------------------------------------------------------------------
# Legacy migration and first run
# ---------------------------------------------------------------------------


def _legacy_history(*snapshots, latest_index=-1):
    entries = []
    for i, snapshot in enumerate(snapshots):
        entries.append(
            HistoryEntry(
                snapshot=snapshot,
                timestamp=f"2023-01-0{i + 1}T00:00:00.000000Z",
                message=f"legacy {i}",
                is_latest=i == (latest_index % len(snapshots)),
            ).to_dict()
        )
    return entries


class TestMigration:
    @pytest.mark.asyncio
    async def test_no_legacy_data_is_noop(self, store: ProjectStore, storage):
        result = await store.migrate_legacy()
        assert result.success
        assert result.project_id is None
        assert storage.data == {}

    @pytest.mark.asyncio
    async def test_migrates_document_and_history(self, store: ProjectStore, storage):
        doc = default_resume_document()
        doc["name"] = "Legacy Person"
        storage.data[keys.LEGACY_RESUME_DATA] = dump_json(doc)
        storage.data[keys.LEGACY_RESUME_HISTORY] = dump_json(_legacy_history(default_resume_document(), doc))

        result = await store.migrate_legacy()

        assert result.success
        project = await store.get(result.project_id)
        assert project.name == "My Resume"
        assert (await store.get_active()).id == project.id
        assert (await store.load_document(project.id))["name"] == "Legacy Person"
        history = await store.history(project.id).entries()
        assert [e.message for e in history] == ["legacy 0", "legacy 1"]
        assert history[-1].is_latest
        assert keys.LEGACY_RESUME_DATA not in storage.data
        assert keys.LEGACY_RESUME_HISTORY not in storage.data

    @pytest.mark.asyncio
    async def test_reconciles_document_with_latest_entry(self, store: ProjectStore, storage):
        doc = default_resume_document()
        doc["name"] = "Edited after last commit"
        storage.data[keys.LEGACY_RESUME_DATA] = dump_json(doc)
        storage.data[keys.LEGACY_RESUME_HISTORY] = dump_json(_legacy_history(default_resume_document()))

        result = await store.migrate_legacy()

        history = await store.history(result.project_id).entries()
        assert history[-1].message == MIGRATED_VERSION_MESSAGE
        assert history[-1].is_latest
        assert history[-1].snapshot == doc
        assert sum(e.is_latest for e in history) == 1

    @pytest.mark.asyncio
    async def test_history_only_uses_latest_snapshot(self, store: ProjectStore, storage):
        doc = default_resume_document()
        doc["title"] = "From history"
        storage.data[keys.LEGACY_RESUME_HISTORY] = dump_json(_legacy_history(doc))

        result = await store.migrate_legacy()

        assert (await store.load_document(result.project_id))["title"] == "From history"

    @pytest.mark.asyncio
    async def test_skipped_when_projects_exist(self, store: ProjectStore, storage):
        await store.create("Existing")
        storage.data[keys.LEGACY_RESUME_DATA] = dump_json(default_resume_document())

        result = await store.migrate_legacy()

        assert result.success
        assert result.project_id is None
        assert len(await store.get_all()) == 1
        assert keys.LEGACY_RESUME_DATA in storage.data

    @pytest.mark.asyncio
    async def test_is_idempotent(self, store: ProjectStore, storage):
        storage.data[keys.LEGACY_RESUME_DATA] = dump_json(default_resume_document())
        await store.migrate_legacy()
        second = await store.migrate_legacy()
        assert second.success and second.project_id is None
        assert len(await store.get_all()) == 1

    @pytest.mark.asyncio
    async def test_failure_keeps_legacy_keys(self, storage):
        storage.data[keys.LEGACY_RESUME_DATA] = dump_json(default_resume_document())
        storage.fail_on = lambda op, key: op == "set" and key == keys.PROJECTS_INDEX
        store = ProjectStore(storage)

        result = await store.migrate_legacy()

        assert not result.success
        assert keys.LEGACY_RESUME_DATA in storage.data
        assert set(storage.data) == {keys.LEGACY_RESUME_DATA}

    @pytest.mark.asyncio
    async def test_history_write_failure_rolls_back_and_retry_succeeds(self, store: ProjectStore, storage):
        doc = default_resume_document()
        doc["name"] = "Legacy Person"
        storage.data[keys.LEGACY_RESUME_DATA] = dump_json(doc)
        storage.data[keys.LEGACY_RESUME_HISTORY] = dump_json(_legacy_history(default_resume_document(), doc))
        history_writes = []

        def fail_second_history_write(op: str, key: str) -> bool:
            if op == "set" and key.startswith("resume_history_"):
                history_writes.append(key)
                return len(history_writes) == 2
            return False

        storage.fail_on = fail_second_history_write

        first = await store.migrate_legacy()

        assert not first.success
        assert await store.get_all() == []
        assert set(storage.data) == {keys.PROJECTS_INDEX, keys.LEGACY_RESUME_DATA, keys.LEGACY_RESUME_HISTORY}

        storage.fail_on = None
        second = await store.migrate_legacy()

        assert second.success
        assert second.project_id is not None
        history = await store.history(second.project_id).entries()
        assert [e.message for e in history] == ["legacy 0", "legacy 1"]
        assert keys.LEGACY_RESUME_HISTORY not in storage.data

    @pytest.mark.asyncio
    async def test_ensure_default_project_creates_template(self, store: ProjectStore):
        project = await store.ensure_default_project()
        assert project.name == "My Resume"
        assert await store.load_document(project.id) == default_resume_document()
        assert (await store.ensure_default_project()).id == project.id


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------


class TestIntegrity:
    @pytest.mark.asyncio
    async def test_clean_store(self, store: ProjectStore):
        await store.create("A")
        report = await store.check_integrity()
        assert report.is_valid
        assert report.errors == []
        assert report.warnings == []

    @pytest.mark.asyncio
    async def test_empty_store_warns(self, store: ProjectStore):
        report = await store.check_integrity()
        assert report.is_valid
        assert report.warnings == ["No projects index found"]

    @pytest.mark.asyncio
    async def test_reports_orphans_and_invalid_data(self, store: ProjectStore, storage):
        project = await store.create("A")
        storage.data[keys.chat_key("project_orphan")] = dump_json([])
        storage.data[keys.resume_key(project.id)] = dump_json({"name": "only a name"})

        report = await store.check_integrity()

        assert not report.is_valid
        assert any("has invalid resume data" in e for e in report.errors)
        assert "Orphaned data found: chat_history_project_orphan" in report.warnings

    @pytest.mark.asyncio
    async def test_dangling_active_id(self, store: ProjectStore, storage):
        await store.create("A")
        index = load_json(storage.data[keys.PROJECTS_INDEX])
        index["activeProjectId"] = "project_gone"
        storage.data[keys.PROJECTS_INDEX] = dump_json(index)

        report = await store.check_integrity()
        assert "Active project ID does not correspond to any existing project" in report.errors
