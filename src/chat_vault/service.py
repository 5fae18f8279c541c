"""End-to-end import pipeline.

:class:`ImportService` wires the archive reader, provider adapters, stores,
reconciler and executor together for one vault.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Literal

from .archive import ExportArchive, validate_archive
from .config import Settings
from .errors import StructuralError
from .executor import ImportExecutor, NoteSource, ProgressCallback
from .identity import build_summaries
from .models import ChatSummary, Plan, Report, Status
from .providers import detect_provider, get_adapter, validate_provider_match
from .providers.base import ProviderAdapter
from .reconcile import VaultReconciler
from .render import content_hash
from .selection import SelectionState, coerce_uids
from .store import ExclusionStore, ImportProfile, MaterializationStore, ProfileStore, StateStore
from .vault import Vault

logger = logging.getLogger(__name__)


@dataclass
class LoadedArchive:
    """An archive parsed into summaries, ready for selection."""

    path: Path
    provider: str
    adapter: ProviderAdapter
    records: list
    summaries: list[ChatSummary]
    digest: str = ""
    _sources: dict[str, NoteSource] = field(default_factory=dict, repr=False)

    def note_source(self, summary: ChatSummary) -> NoteSource:
        if summary.uid not in self._sources:
            messages = self.adapter.get_messages(self.records[summary.source_ref.offset])
            self._sources[summary.uid] = NoteSource(
                summary=summary,
                messages=messages,
                content_hash=content_hash(messages),
                provider=self.provider,
            )
        return self._sources[summary.uid]

    def note_sources(self) -> dict[str, NoteSource]:
        return {s.uid: self.note_source(s) for s in self.summaries}

    def hashes(self) -> dict[str, str]:
        return {uid: source.content_hash for uid, source in self.note_sources().items()}


class ImportService:
    """Import chat archives into one vault."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.vault = Vault(settings.vault_root, settings.state_dir.name)
        self.state = StateStore(settings.state_path)
        self.exclusions = ExclusionStore(self.state)
        self.materialized = MaterializationStore(settings.materialized_dir)
        self.profiles = ProfileStore(self.state, settings.profiles_dir)

    def load(self, archive_path: Path, forced_provider: str | None = None) -> LoadedArchive:
        """Read an archive and build its conversation summaries.

        Raises:
            StructuralError: If the archive layout is invalid or nothing parses.
            ProviderMismatchError: If the forced provider contradicts the content.
        """
        archive = ExportArchive(archive_path)
        validate_archive(archive.names(), forced_provider)

        records = archive.load_records()
        if not records:
            raise StructuralError(
                "No conversations found",
                f"{archive.conversations_entry()} in {archive.path.name} contains no parseable conversations.",
            )

        if forced_provider:
            validate_provider_match(records, forced_provider)
        provider = forced_provider or detect_provider(records)
        if provider == "unknown":
            raise StructuralError("Unknown provider", "Could not detect provider from the archive.")

        adapter = get_adapter(provider)
        summaries = build_summaries(
            records,
            adapter,
            str(archive.path),
            archive.conversations_entry() or "conversations.json",
            self.settings.keyword_sample_chars,
        )
        logger.info(f"Loaded {len(summaries)} chats from {archive.path.name} ({provider})")

        return LoadedArchive(
            path=archive.path,
            provider=provider,
            adapter=adapter,
            records=records,
            summaries=summaries,
            digest=archive.digest(),
        )

    def is_imported(self, loaded: LoadedArchive) -> bool:
        """Whether this exact archive file was imported before."""
        return self.state.is_archive_imported(loaded.digest)

    def mark_imported(self, loaded: LoadedArchive) -> None:
        self.state.add_imported_archive(loaded.digest, loaded.path.name)
        self.state.set_last_export_path(str(loaded.path))

    def active_profile(self) -> ImportProfile:
        return self.profiles.get_active()

    def ignored(self, profile: ImportProfile | None = None) -> dict[str, bool]:
        """UIDs treated as ignored under a profile (default: the active one).

        The profile's own ignores always count. Global ignores count unless
        the profile explicitly includes the UID.
        """
        profile = profile or self.active_profile()
        include = coerce_uids(profile.include)
        ignored = {uid: True for uid in self.exclusions.list() if uid not in include}
        ignored.update({uid: True for uid in coerce_uids(profile.ignore)})
        return ignored

    def ignore(self, uids: Iterable[str]) -> None:
        """Add UIDs to the global ignore list, overriding profile includes."""
        uids = [u for u in uids if u]
        self.exclusions.add(uids)
        self._drop_includes(uids)

    def exclude(self, selection: SelectionState, uids: Iterable[str] | None = None) -> list[str]:
        """Globally ignore the selected (or the given) conversations.

        Returns:
            The UIDs that were written.
        """
        written = selection.exclude_selected(self.exclusions, uids)
        self._drop_includes(written)
        return written

    def _drop_includes(self, uids: list[str]) -> None:
        profile = self.active_profile()
        dropped = [uid for uid in uids if profile.include.pop(uid, None) is not None]
        if dropped:
            self.profiles.save(profile)

    def selection(self, loaded: LoadedArchive) -> SelectionState:
        """A selection of everything in the archive minus ignored conversations."""
        selection = SelectionState(loaded.summaries)
        selection.apply_exclusions(self.ignored())
        return selection

    def reconciler(self, loaded: LoadedArchive) -> VaultReconciler:
        profile = self.active_profile()
        return VaultReconciler(
            self.vault,
            self.materialized,
            loaded.hashes(),
            filename_template=profile.filename_template or self.settings.filename_template,
            folder=profile.target_folder or self.settings.notes_folder,
        )

    def statuses(self, loaded: LoadedArchive) -> dict[str, Status]:
        return self.reconciler(loaded).statuses(loaded.summaries, self.ignored())

    def plan(self, loaded: LoadedArchive, selected: list[str]) -> Plan:
        return self.reconciler(loaded).plan(selected, loaded.summaries)

    def execute(
        self,
        loaded: LoadedArchive,
        plan: Plan,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> Report:
        executor = ImportExecutor(
            self.vault,
            self.materialized,
            loaded.note_sources(),
            progress=progress,
            cancel=cancel,
            profile_name=self.active_profile().name,
        )
        return executor.run(plan)

    def record_selection(
        self,
        loaded: LoadedArchive,
        selection: SelectionState,
        persist_unselected: bool = False,
        ignore_scope: Literal["profile", "global"] = "profile",
    ) -> None:
        """Remember the confirmed selection in the active profile.

        Selected conversations are recorded as included. With
        ``persist_unselected`` the rest are ignored, either in the profile
        or in the global exclusion list.
        """
        profile = self.active_profile()
        for uid in selection.selected():
            profile.include[uid] = True
            profile.ignore.pop(uid, None)

        if persist_unselected:
            unselected = selection.unselected()
            for uid in unselected:
                profile.include.pop(uid, None)
            if ignore_scope == "global":
                self.exclusions.add(unselected)
            else:
                for uid in unselected:
                    profile.ignore[uid] = True

        try:
            self.profiles.save(profile)
        except OSError as e:
            logger.warning(f"Failed to persist selection to profile {profile.name}: {e}")

    def import_archive(
        self,
        archive_path: Path,
        forced_provider: str | None = None,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> Report:
        """Import every conversation that is not ignored."""
        loaded = self.load(archive_path, forced_provider)
        selection = self.selection(loaded)
        plan = self.plan(loaded, selection.selected())
        report = self.execute(loaded, plan, progress, cancel)
        if not report.cancelled:
            self.mark_imported(loaded)
        return report
