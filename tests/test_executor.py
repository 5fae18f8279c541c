"""Tests for plan execution: ordering, failure isolation and cancellation."""

import threading

import pytest

from chat_vault.executor import ImportExecutor
from chat_vault.models import Action, PlanItem
from chat_vault.vault import Vault

from conftest import chatgpt_record, write_zip


THREE = [
    chatgpt_record("c1", "One", 1700000000.0, 10.0, [("user", "first")]),
    chatgpt_record("c2", "Two", 1700000000.0, 20.0, [("user", "second")]),
    chatgpt_record("c3", "Three", 1700000000.0, 30.0, [("user", "third")]),
]


class FailingVault(Vault):
    """Vault that refuses every write whose path mentions a marker."""

    def __init__(self, root, marker):
        super().__init__(root)
        self.marker = marker
        self.attempts = []

    def write(self, rel_path, content):
        self.attempts.append(rel_path)
        if self.marker in rel_path:
            raise PermissionError(f"denied: {rel_path}")
        super().write(rel_path, content)


@pytest.fixture
def loaded(service, tmp_path):
    return service.load(write_zip(tmp_path / "three.zip", {"conversations.json": THREE}))


def executor_for(service, loaded, vault=None, **kwargs):
    return ImportExecutor(vault or service.vault, service.materialized, loaded.note_sources(), **kwargs)


class TestRun:
    def test_writes_notes_and_records(self, service, loaded, vault_dir):
        plan = service.plan(loaded, ["c1", "c2", "c3"])
        report = executor_for(service, loaded).run(plan)

        assert report.created_count == 3
        for item in plan:
            assert (vault_dir / item.target_path).exists()
            assert service.materialized.get(item.uid).file_path == item.target_path

    def test_partial_failure_isolation(self, service, loaded, vault_dir):
        """A failing second item does not stop the first or third."""
        plan = service.plan(loaded, ["c1", "c2", "c3"])
        vault = FailingVault(vault_dir, "c2")
        # Route both the templated name and the fallback name into the failure
        plan[1].target_path = "Chats/c2-note.md"

        report = executor_for(service, loaded, vault=vault).run(plan)

        assert [e.outcome for e in report.entries] == ["created", "error", "created"]
        assert "denied" in report.entry_for("c2").message
        assert service.materialized.get("c1") is not None
        assert service.materialized.get("c2") is None
        assert service.materialized.get("c3") is not None

    def test_fallback_filename_retry(self, service, loaded, vault_dir):
        plan = service.plan(loaded, ["c1"])
        vault = FailingVault(vault_dir, "one")

        report = executor_for(service, loaded, vault=vault).run(plan)

        assert vault.attempts == ["Chats/2023-11-14 one.md", "Chats/c1.md"]
        assert report.entries[0].outcome == "created"
        assert service.materialized.get("c1").file_path == "Chats/c1.md"

    def test_skip_items_do_not_write(self, service, loaded, vault_dir):
        plan = [PlanItem(uid="c1", action=Action.SKIP, target_path="Chats/x.md", reason="hash equal")]
        vault = FailingVault(vault_dir, "never")

        report = executor_for(service, loaded, vault=vault).run(plan)

        assert vault.attempts == []
        assert report.skipped_count == 1
        assert report.entries[0].message == "hash equal"

    def test_progress_event_order(self, service, loaded):
        plan = service.plan(loaded, ["c1", "c2"])
        plan[1].action = Action.SKIP
        events = []

        executor_for(service, loaded, progress=events.append).run(plan)

        assert [e.phase for e in events] == ["scan", "process", "write", "process", "complete"]
        assert events[0].total == 2

    def test_cancel_stops_new_items(self, service, loaded):
        plan = service.plan(loaded, ["c1", "c2", "c3"])
        cancel = threading.Event()
        events = []

        def on_progress(event):
            events.append(event.phase)
            if event.phase == "write":
                cancel.set()

        report = executor_for(service, loaded, progress=on_progress, cancel=cancel).run(plan)

        assert report.cancelled is True
        assert [e.uid for e in report.entries] == ["c1"]
        assert service.materialized.get("c1") is not None
        assert service.materialized.get("c2") is None
        assert events[-1] == "cancelled"

    def test_fatal_error_emits_error_and_raises(self, service, loaded):
        plan = service.plan(loaded, ["c1"])
        events = []

        def on_progress(event):
            events.append(event.phase)
            if event.phase == "process":
                raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            executor_for(service, loaded, progress=on_progress).run(plan)
        assert events[-1] == "error"


class TestIdempotence:
    def test_second_run_skips_everything(self, service, chatgpt_zip):
        first = service.import_archive(chatgpt_zip)
        assert first.created_count == 2

        loaded = service.load(chatgpt_zip)
        plan = service.plan(loaded, service.selection(loaded).selected())
        assert {i.action for i in plan} == {Action.SKIP}

        second = service.execute(loaded, plan)
        assert second.skipped_count == 2
        assert second.created_count == second.updated_count == 0

    def test_changed_conversation_is_updated_in_place(self, service, chatgpt_zip, tmp_path, vault_dir):
        service.import_archive(chatgpt_zip)
        path = service.materialized.get("x1").file_path

        changed = chatgpt_record(
            "x1", "Recipe A", 1700000000.0, 300.0,
            [("user", "How do I bake bread?"), ("assistant", "Use a hot oven.")],
        )
        newer = write_zip(tmp_path / "newer.zip", {"conversations.json": [changed]})
        report = service.import_archive(newer)

        assert report.updated_count == 1
        assert report.entries[0].file_path == path
        assert "Use a hot oven." in (vault_dir / path).read_text()


@pytest.mark.parametrize("path", ["../outside.md", "/etc/outside.md", "Chats/../../x.md"])
def test_vault_rejects_escaping_paths(vault_dir, path):
    from chat_vault.errors import WriteError

    with pytest.raises(WriteError):
        Vault(vault_dir).write(path, "x")
