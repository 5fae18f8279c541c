"""Apply an import plan to the vault."""

import logging
import posixpath
import threading
import time
from dataclasses import dataclass
from typing import Callable, Mapping

from .errors import WriteError
from .models import (
    Action,
    ChatSummary,
    MaterializationRecord,
    Plan,
    PlanItem,
    ProgressEvent,
    Report,
    ReportEntry,
)
from .providers.base import Message
from .render import render_note, safe_filename
from .store import MaterializationStore
from .vault import Vault

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class NoteSource:
    """Everything needed to render one conversation's note."""

    summary: ChatSummary
    messages: list[Message]
    content_hash: str
    provider: str | None = None


def _now_ms() -> int:
    return int(time.time() * 1000)


class ImportExecutor:
    """Writes notes for NEW and UPDATE plan items, one at a time.

    The materialization record for an item is stored only after its note
    was written. A cancel request is honoured between items; items already
    written stay recorded.
    """

    def __init__(
        self,
        vault: Vault,
        materialized: MaterializationStore,
        notes: Mapping[str, NoteSource],
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
        profile_name: str | None = None,
    ):
        self.vault = vault
        self.materialized = materialized
        self.notes = notes
        self.progress = progress
        self.cancel = cancel or threading.Event()
        self.profile_name = profile_name

    def _emit(self, phase, title: str, detail: str = "", current=None, total=None) -> None:
        if self.progress is not None:
            self.progress(ProgressEvent(phase=phase, title=title, detail=detail, current=current, total=total))

    def run(self, plan: Plan) -> Report:
        """Execute a plan.

        Args:
            plan: Items produced by the reconciler.

        Returns:
            Report with one entry per dispatched item.
        """
        report = Report()
        total = len(plan)
        pending = sum(1 for item in plan if item.action is not Action.SKIP)

        try:
            self._emit("scan", "Scanning plan", f"{pending} of {total} conversation(s) to write", 0, total)

            for index, item in enumerate(plan, start=1):
                if self.cancel.is_set():
                    report.cancelled = True
                    logger.info(f"Import cancelled after {index - 1} of {total} item(s)")
                    self._emit("cancelled", "Import cancelled", f"{total - index + 1} item(s) left for a later run", index - 1, total)
                    return report

                self._emit("process", "Processing conversations", item.uid, index, total)
                report.add(self._run_item(item, index, total))

        except Exception as e:
            logger.error(f"Import failed: {e}")
            self._emit("error", "Import failed", str(e))
            raise

        self._emit(
            "complete",
            "Import completed",
            f"{report.created_count} created, {report.updated_count} updated, "
            f"{report.skipped_count} skipped, {report.failed_count} failed",
            total,
            total,
        )
        return report

    def _run_item(self, item: PlanItem, index: int, total: int) -> ReportEntry:
        if item.action is Action.SKIP:
            return ReportEntry(uid=item.uid, action=item.action, outcome="skipped", file_path=item.target_path, message=item.reason)

        source = self.notes.get(item.uid)
        if source is None:
            logger.warning(f"No content for planned conversation {item.uid}")
            return ReportEntry(uid=item.uid, action=item.action, outcome="error", message="Conversation not found in archive")

        self._emit("write", "Writing notes", item.target_path, index, total)
        try:
            path = self._write(item, source)
        except WriteError as e:
            return ReportEntry(uid=item.uid, action=item.action, outcome="error", file_path=item.target_path, message=e.message)

        outcome = "created" if item.action is Action.NEW else "updated"
        return ReportEntry(uid=item.uid, action=item.action, outcome=outcome, file_path=path)

    def _write(self, item: PlanItem, source: NoteSource) -> str:
        """Write the note, retrying once under a safe file name.

        Returns:
            The vault-relative path that was written.

        Raises:
            WriteError: If both attempts fail.
        """
        imported_at = _now_ms()
        content = render_note(source.summary, source.messages, source.content_hash, imported_at, source.provider)

        path = item.target_path
        try:
            self.vault.write(path, content)
        except (OSError, ValueError, WriteError) as first:
            fallback = posixpath.join(posixpath.dirname(path), safe_filename(source.summary))
            logger.warning(f"Writing {path} failed ({first}); retrying as {fallback}")
            try:
                self.vault.write(fallback, content)
            except (OSError, ValueError, WriteError) as second:
                logger.warning(f"Giving up on {item.uid}: {second}")
                raise WriteError(item.uid, str(second)) from second
            path = fallback

        try:
            self.materialized.put(
                MaterializationRecord(
                    uid=item.uid,
                    content_hash=source.content_hash,
                    updated_at=source.summary.updated_at,
                    file_path=path,
                    last_imported_at=imported_at,
                    profile_name=self.profile_name,
                )
            )
        except OSError as e:
            logger.warning(f"Wrote {path} but could not record it: {e}")
            raise WriteError(item.uid, f"Note written but not recorded: {e}") from e

        logger.debug(f"Wrote {path} for {item.uid}")
        return path
