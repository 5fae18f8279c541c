"""Tests for the durable stores."""

import hashlib
import json

from chat_vault.models import MaterializationRecord
from chat_vault.store import (
    ExclusionStore,
    ImportProfile,
    MaterializationStore,
    ProfileStore,
    StateStore,
)


class TestStateStore:
    def test_defaults_when_missing(self, tmp_path):
        state = StateStore(tmp_path / "state.json").load()

        assert state["profiles"] == ["Default"]
        assert state["activeProfile"] == "Default"
        assert state["globalIgnores"] == {}
        assert state["lastExportPath"] is None

    def test_save_bumps_version(self, tmp_path):
        store = StateStore(tmp_path / "nested" / "state.json")
        store.set_last_export_path("/exports/a.zip")
        store.set_last_export_path("/exports/b.zip")

        state = store.load()
        assert state["version"] == 2
        assert store.last_export_path() == "/exports/b.zip"

    def test_imported_archives(self, tmp_path):
        store = StateStore(tmp_path / "state.json")
        assert store.is_archive_imported("d1") is False

        store.add_imported_archive("d1", "export.zip")

        assert StateStore(tmp_path / "state.json").is_archive_imported("d1") is True
        assert store.load()["importedArchives"] == {"d1": "export.zip"}

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        assert StateStore(path).load()["globalIgnores"] == {}


class TestExclusionStore:
    def test_add_is_idempotent_union(self, tmp_path):
        store = ExclusionStore(StateStore(tmp_path / "state.json"))
        store.add(["a", "b"])
        store.add(["b", "c"])
        assert store.list() == {"a": True, "b": True, "c": True}

    def test_survives_new_instance(self, tmp_path):
        ExclusionStore(StateStore(tmp_path / "state.json")).add(["a"])
        assert ExclusionStore(StateStore(tmp_path / "state.json")).list() == {"a": True}

    def test_set_remove_clear(self, tmp_path):
        store = ExclusionStore(StateStore(tmp_path / "state.json"))
        store.set({"a": True, "b": True, "c": False})
        assert store.list() == {"a": True, "b": True}

        store.remove(["a", "zzz"])
        assert store.list() == {"b": True}

        store.clear()
        assert store.list() == {}

    def test_state_file_format(self, tmp_path):
        path = tmp_path / "state.json"
        ExclusionStore(StateStore(path)).add(["a"])
        data = json.loads(path.read_text())
        assert data["globalIgnores"] == {"a": True}
        assert set(data) >= {"lastExportPath", "profiles", "activeProfile", "globalIgnores"}


class TestMaterializationStore:
    def test_put_get_roundtrip(self, tmp_path):
        store = MaterializationStore(tmp_path / "materialised")
        record = MaterializationRecord(
            uid="x1",
            content_hash="abc",
            updated_at=100000,
            file_path="Chats/2023-11-14 recipe-a.md",
            last_imported_at=1,
            profile_name="Default",
        )
        store.put(record)

        assert store.get("x1") == record
        assert store.get("missing") is None
        assert [r.uid for r in store.all()] == ["x1"]

        (path,) = (tmp_path / "materialised").glob("*.json")
        assert path.stem == hashlib.sha256(b"x1").hexdigest()
        data = json.loads(path.read_text())
        assert data["contentHash"] == "abc"
        assert data["filePath"] == "Chats/2023-11-14 recipe-a.md"

    def test_malformed_record_is_ignored(self, tmp_path):
        store = MaterializationStore(tmp_path / "materialised")
        store.put(MaterializationRecord("x1", "h", 0, "n.md", 0))
        store._path("x1").write_text("[1, 2]")
        store._path("x2").write_text('{"uid": "x2", "updatedAt": "soon"}')

        assert store.get("x1") is None
        assert store.get("x2") is None
        assert store.all() == []

    def test_uid_is_made_filename_safe(self, tmp_path):
        store = MaterializationStore(tmp_path)
        store.put(MaterializationRecord("a/b", "h", 0, "n.md", 0))
        assert store.get("a/b").uid == "a/b"
        assert not (tmp_path / "a").exists()

    def test_similar_uids_do_not_share_a_record(self, tmp_path):
        """UIDs that differ only in unsafe characters stay separate."""
        store = MaterializationStore(tmp_path)
        store.put(MaterializationRecord("a/b", "h1", 0, "Chats/first.md", 0))

        assert store.get("a_b") is None

        store.put(MaterializationRecord("a_b", "h2", 0, "Chats/second.md", 0))
        assert store.get("a/b").file_path == "Chats/first.md"
        assert store.get("a_b").file_path == "Chats/second.md"

    def test_record_for_another_uid_is_ignored(self, tmp_path):
        store = MaterializationStore(tmp_path)
        store.put(MaterializationRecord("x1", "h", 0, "Chats/x1.md", 0))
        store._path("x1").rename(store._path("x2"))

        assert store.get("x2") is None
        assert [r.uid for r in store.all()] == ["x1"]


class TestProfileStore:
    def make(self, tmp_path):
        return ProfileStore(StateStore(tmp_path / "state.json"), tmp_path / "profiles")

    def test_active_defaults(self, tmp_path):
        profile = self.make(tmp_path).get_active()
        assert profile.name == "Default"
        assert profile.include == {}

    def test_save_registers_and_activates(self, tmp_path):
        store = self.make(tmp_path)
        store.save(ImportProfile(name="Work", target_folder="Chats/Work", include={"x1": True}))
        store.set_active("Work")

        assert store.list() == ["Default", "Work"]
        active = store.get_active()
        assert active.target_folder == "Chats/Work"
        assert active.include == {"x1": True}

    def test_delete_active_falls_back(self, tmp_path):
        store = self.make(tmp_path)
        store.save(ImportProfile(name="Work"))
        store.set_active("Work")
        store.delete("Work")

        assert store.list() == ["Default"]
        assert store.get("Work") is None
        assert store.get_active().name == "Default"
