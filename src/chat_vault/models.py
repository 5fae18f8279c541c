"""Data structures shared across the import pipeline."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Literal


class Action(str, Enum):
    """What the executor does with one selected conversation."""

    NEW = "NEW"
    UPDATE = "UPDATE"
    SKIP = "SKIP"


class Status(str, Enum):
    """Display label for a conversation in the selection listing."""

    NEW = "new"
    UPDATED = "updated"
    IMPORTED = "imported"
    IGNORED = "ignored"


@dataclass
class SourceRef:
    """Where a conversation came from inside an export archive."""

    export_path: str
    entry: str = "conversations.json"
    offset: int | None = None


@dataclass
class ChatSummary:
    """Lightweight per-conversation row built once per archive load.

    Timestamps are epoch milliseconds.
    """

    uid: str
    title: str
    created_at: int
    updated_at: int
    message_count: int
    source_ref: SourceRef
    keywords_sample: str | None = None
    model: str | None = None


@dataclass
class MaterializationRecord:
    """Durable record of the last successful write for one conversation."""

    uid: str
    content_hash: str
    updated_at: int
    file_path: str
    last_imported_at: int
    profile_name: str | None = None

    def to_json(self) -> dict:
        data = {
            "uid": self.uid,
            "contentHash": self.content_hash,
            "updatedAt": self.updated_at,
            "filePath": self.file_path,
            "lastImportedAt": self.last_imported_at,
        }
        if self.profile_name is not None:
            data["profileName"] = self.profile_name
        return data

    @classmethod
    def from_json(cls, data: dict) -> "MaterializationRecord":
        return cls(
            uid=str(data["uid"]),
            content_hash=str(data.get("contentHash", "")),
            updated_at=int(data.get("updatedAt") or 0),
            file_path=str(data.get("filePath", "")),
            last_imported_at=int(data.get("lastImportedAt") or 0),
            profile_name=data.get("profileName"),
        )


@dataclass
class PlanItem:
    """One planned action for a selected conversation."""

    uid: str
    action: Action
    target_path: str
    reason: str | None = None


Plan = list[PlanItem]


@dataclass
class ReportEntry:
    """Outcome of a single plan item."""

    uid: str
    action: Action
    outcome: Literal["created", "updated", "skipped", "error"]
    file_path: str | None = None
    message: str | None = None


@dataclass
class Report:
    """Per-run record of what the executor did."""

    entries: list[ReportEntry] = field(default_factory=list)
    cancelled: bool = False

    def add(self, entry: ReportEntry) -> None:
        self.entries.append(entry)

    def _count(self, outcome: str) -> int:
        return sum(1 for e in self.entries if e.outcome == outcome)

    @property
    def created_count(self) -> int:
        return self._count("created")

    @property
    def updated_count(self) -> int:
        return self._count("updated")

    @property
    def skipped_count(self) -> int:
        return self._count("skipped")

    @property
    def failed_count(self) -> int:
        return self._count("error")

    def entry_for(self, uid: str) -> ReportEntry | None:
        for entry in self.entries:
            if entry.uid == uid:
                return entry
        return None

    def to_dict(self) -> dict:
        return {
            "cancelled": self.cancelled,
            "created": self.created_count,
            "updated": self.updated_count,
            "skipped": self.skipped_count,
            "failed": self.failed_count,
            "entries": [
                {**asdict(e), "action": e.action.value} for e in self.entries
            ],
        }


ProgressPhase = Literal["scan", "process", "write", "complete", "error", "cancelled"]


@dataclass
class ProgressEvent:
    """Progress notification emitted by the executor."""

    phase: ProgressPhase
    title: str
    detail: str = ""
    current: int | None = None
    total: int | None = None
