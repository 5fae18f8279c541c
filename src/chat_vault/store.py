"""Durable state: global state file, exclusions, profiles, materialization.

All stores assume a single writer. Two concurrent import runs against the
same state directory are not coordinated and the last save wins.
"""

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from .models import MaterializationRecord

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_NAME = "Default"


def _default_state() -> dict:
    return {
        "version": 0,
        "lastExportPath": None,
        "profiles": [DEFAULT_PROFILE_NAME],
        "activeProfile": DEFAULT_PROFILE_NAME,
        "globalIgnores": {},
        "importedArchives": {},
    }


def _write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


def _read_json(path: Path) -> dict | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read {path}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {path}: expected a JSON object")
        return None
    return data


@dataclass
class StateStore:
    """The global ``state.json`` file.

    Holds ``lastExportPath``, the profile names, the active profile, the
    global ignore map and the digests of imported archives. Every save bumps
    ``version``.
    """

    path: Path

    def load(self) -> dict:
        state = _default_state()
        if self.path.exists():
            data = _read_json(self.path)
            if data is not None:
                state.update(data)
        for key in ("globalIgnores", "importedArchives"):
            if not isinstance(state.get(key), dict):
                state[key] = {}
        return state

    def save(self, state: dict) -> None:
        state["version"] = int(state.get("version") or 0) + 1
        _write_json(self.path, state)

    def mutate(self, mutator: Callable[[dict], None]) -> dict:
        state = self.load()
        mutator(state)
        self.save(state)
        return state

    def last_export_path(self) -> str | None:
        return self.load().get("lastExportPath")

    def set_last_export_path(self, path: str) -> None:
        self.mutate(lambda s: s.__setitem__("lastExportPath", path))

    def is_archive_imported(self, digest: str) -> bool:
        return digest in self.load()["importedArchives"]

    def add_imported_archive(self, digest: str, name: str) -> None:
        self.mutate(lambda s: s["importedArchives"].__setitem__(digest, name))


class ExclusionStore:
    """Global set of UIDs that are never pre-selected for import."""

    def __init__(self, state: StateStore):
        self.state = state

    def list(self) -> dict[str, bool]:
        ignores = self.state.load()["globalIgnores"]
        return {uid: True for uid, flag in ignores.items() if flag}

    def add(self, uids: Iterable[str]) -> None:
        uids = [u for u in uids if u]

        def _add(state: dict) -> None:
            for uid in uids:
                state["globalIgnores"][uid] = True

        self.state.mutate(_add)
        logger.info(f"Added {len(uids)} conversation(s) to the global ignore list")

    def remove(self, uids: Iterable[str]) -> None:
        uids = list(uids)

        def _remove(state: dict) -> None:
            for uid in uids:
                state["globalIgnores"].pop(uid, None)

        self.state.mutate(_remove)

    def set(self, mapping: dict[str, bool]) -> None:
        cleaned = {uid: True for uid, flag in mapping.items() if flag}
        self.state.mutate(lambda s: s.__setitem__("globalIgnores", cleaned))

    def clear(self) -> None:
        self.set({})


def _safe_key(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]", "_", name)


def _record_key(uid: str) -> str:
    return hashlib.sha256(uid.encode("utf-8")).hexdigest()


class MaterializationStore:
    """One JSON file per UID recording the last successful write.

    Files are named by the sha256 of the UID so distinct UIDs never share one.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, uid: str) -> Path:
        return self.directory / f"{_record_key(uid)}.json"

    def _load(self, path: Path) -> MaterializationRecord | None:
        data = _read_json(path)
        if data is None:
            return None
        try:
            return MaterializationRecord.from_json(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed materialization record {path}: {e}")
            return None

    def get(self, uid: str) -> MaterializationRecord | None:
        path = self._path(uid)
        if not path.exists():
            return None
        record = self._load(path)
        if record is not None and record.uid != uid:
            logger.warning(f"Ignoring materialization record {path}: it belongs to {record.uid}, not {uid}")
            return None
        return record

    def put(self, record: MaterializationRecord) -> None:
        _write_json(self._path(record.uid), record.to_json())

    def all(self) -> list[MaterializationRecord]:
        """Every readable record, ordered by UID."""
        if not self.directory.is_dir():
            return []
        records = [self._load(path) for path in self.directory.glob("*.json")]
        return sorted((r for r in records if r is not None), key=lambda r: r.uid)


@dataclass
class ImportProfile:
    """Named import settings plus remembered include/ignore choices."""

    name: str
    target_folder: str | None = None
    filename_template: str | None = None
    include: dict[str, bool] = field(default_factory=dict)
    ignore: dict[str, bool] = field(default_factory=dict)

    def to_json(self) -> dict:
        return {
            "name": self.name,
            "targetFolder": self.target_folder,
            "filenameTemplate": self.filename_template,
            "include": self.include,
            "ignore": self.ignore,
        }

    @classmethod
    def from_json(cls, data: dict) -> "ImportProfile":
        return cls(
            name=str(data["name"]),
            target_folder=data.get("targetFolder"),
            filename_template=data.get("filenameTemplate"),
            include=dict(data.get("include") or {}),
            ignore=dict(data.get("ignore") or {}),
        )


class ProfileStore:
    """Import profiles stored as ``profiles/<name>.json``.

    Profile names and the active profile live in the global state file.
    """

    def __init__(self, state: StateStore, directory: Path):
        self.state = state
        self.directory = Path(directory)

    def _path(self, name: str) -> Path:
        return self.directory / f"{_safe_key(name)}.json"

    def list(self) -> list[str]:
        return list(self.state.load()["profiles"])

    def get(self, name: str) -> ImportProfile | None:
        path = self._path(name)
        if not path.exists():
            return None
        data = _read_json(path)
        if data is None or "name" not in data:
            return None
        return ImportProfile.from_json(data)

    def get_active(self) -> ImportProfile:
        name = self.state.load()["activeProfile"]
        return self.get(name) or ImportProfile(name=name)

    def save(self, profile: ImportProfile) -> None:
        _write_json(self._path(profile.name), profile.to_json())

        def _register(state: dict) -> None:
            if profile.name not in state["profiles"]:
                state["profiles"].append(profile.name)

        self.state.mutate(_register)

    def set_active(self, name: str) -> None:
        def _activate(state: dict) -> None:
            state["activeProfile"] = name
            if name not in state["profiles"]:
                state["profiles"].append(name)

        self.state.mutate(_activate)

    def delete(self, name: str) -> None:
        path = self._path(name)
        if path.exists():
            path.unlink()

        def _unregister(state: dict) -> None:
            state["profiles"] = [p for p in state["profiles"] if p != name]
            if not state["profiles"]:
                state["profiles"] = [DEFAULT_PROFILE_NAME]
            if state["activeProfile"] == name:
                state["activeProfile"] = state["profiles"][0]

        self.state.mutate(_unregister)
