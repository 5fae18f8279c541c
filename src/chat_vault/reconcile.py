"""Decide, per selected conversation, whether to create, update or skip.

The reconciler joins three sources on UID: the archive summaries, the
materialization cache (falling back to the identity marker embedded in
existing notes), and the ignore map (for status labels only).
It performs reads only.
"""

import logging
import posixpath
from typing import Callable, Iterable, Mapping

from .models import Action, ChatSummary, MaterializationRecord, Plan, PlanItem, Status
from .render import DEFAULT_FILENAME_TEMPLATE, read_note_identity, render_filename, safe_filename
from .store import MaterializationStore
from .vault import Vault

logger = logging.getLogger(__name__)

Lookup = Callable[[str], MaterializationRecord | None]


def status(
    uid: str,
    exclusions: Mapping[str, bool],
    lookup: Lookup,
    archive_updated_at: int,
) -> Status:
    """Display status of a conversation.

    Precedence: ignored, then updated, then imported, then new.
    """
    if exclusions.get(uid):
        return Status.IGNORED
    record = lookup(uid)
    if record is None:
        return Status.NEW
    if record.updated_at < archive_updated_at:
        return Status.UPDATED
    return Status.IMPORTED


class VaultReconciler:
    """Builds import plans against the current vault state."""

    def __init__(
        self,
        vault: Vault,
        materialized: MaterializationStore,
        hashes: Mapping[str, str],
        filename_template: str = DEFAULT_FILENAME_TEMPLATE,
        folder: str = "",
    ):
        self.vault = vault
        self.materialized = materialized
        self.hashes = hashes
        self.filename_template = filename_template
        self.folder = folder.strip("/")
        self._scan_index: dict[str, MaterializationRecord] | None = None

    def _scan(self) -> dict[str, MaterializationRecord]:
        if self._scan_index is not None:
            return self._scan_index

        index: dict[str, MaterializationRecord] = {}
        for rel_path in self.vault.iter_notes():
            try:
                text = self.vault.read(rel_path)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not read note {rel_path}: {e}")
                continue
            identity = read_note_identity(text)
            if identity is None:
                continue
            index[identity.uid] = MaterializationRecord(
                uid=identity.uid,
                content_hash=identity.content_hash,
                updated_at=identity.updated_at,
                file_path=rel_path,
                last_imported_at=0,
            )
        logger.debug(f"Vault scan found {len(index)} imported note(s)")
        self._scan_index = index
        return index

    def lookup(self, uid: str) -> MaterializationRecord | None:
        """Find the materialization record for a UID.

        The per-UID cache wins; notes in the vault are scanned otherwise.
        """
        record = self.materialized.get(uid)
        if record is not None:
            return record
        return self._scan().get(uid)

    def _join(self, name: str) -> str:
        return posixpath.join(self.folder, name) if self.folder else name

    def target_path(self, summary: ChatSummary, taken: set[str] | None = None) -> str:
        """Templated path for a new note, suffixed until it is free.

        Candidates are the plain name, then ``(<uid_short>)``, then
        ``(<uid>)``, then ``(<uid> 2)``, ``(<uid> 3)`` and so on.
        """
        name = render_filename(self.filename_template, summary)
        stem = name[:-3]
        uid = safe_filename(summary)[:-3]

        candidates = [name, f"{stem} ({uid[:7]}).md", f"{stem} ({uid}).md"]
        counter = 2
        while True:
            for candidate in candidates:
                path = self._join(candidate)
                if (taken is None or path not in taken) and not self._owned_by_other(path, summary.uid):
                    return path
            candidates = [f"{stem} ({uid} {counter}).md"]
            counter += 1

    def _owned_by_other(self, rel_path: str, uid: str) -> bool:
        if not self.vault.exists(rel_path):
            return False
        try:
            identity = read_note_identity(self.vault.read(rel_path))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read note {rel_path}: {e}")
            return True
        return identity is None or identity.uid != uid

    def classify(self, summary: ChatSummary, record: MaterializationRecord | None) -> tuple[Action, str | None]:
        if record is None:
            return Action.NEW, None

        current_hash = self.hashes.get(summary.uid)
        if current_hash is not None and current_hash != record.content_hash:
            return Action.UPDATE, "content changed"
        if summary.updated_at > record.updated_at:
            return Action.UPDATE, "archive is newer"
        return Action.SKIP, "hash equal"

    def plan(self, selected: Iterable[str], summaries: list[ChatSummary]) -> Plan:
        """Compute the action for every selected conversation.

        Args:
            selected: UIDs to import.
            summaries: Summaries of the loaded archive.

        Returns:
            Plan items in the order of ``summaries``.
        """
        by_uid = {s.uid: s for s in summaries}
        wanted = set(selected)
        for uid in wanted - set(by_uid):
            logger.warning(f"Selected conversation {uid} is not in the archive, skipping")

        plan: Plan = []
        taken: set[str] = set()

        for summary in summaries:
            if summary.uid not in wanted:
                continue

            record = self.lookup(summary.uid)
            action, reason = self.classify(summary, record)

            if record is not None and not self.vault.exists(record.file_path):
                logger.info(f"Note {record.file_path} for {summary.uid} is gone, recreating it")
                action, reason = Action.NEW, "note missing"

            if record is not None:
                path = record.file_path
            else:
                path = self.target_path(summary, taken)
            taken.add(path)

            logger.debug(f"{summary.uid}: {action.value} -> {path} ({reason})")
            plan.append(PlanItem(uid=summary.uid, action=action, target_path=path, reason=reason))

        return plan

    def statuses(self, summaries: list[ChatSummary], exclusions: Mapping[str, bool]) -> dict[str, Status]:
        return {s.uid: status(s.uid, exclusions, self.lookup, s.updated_at) for s in summaries}
