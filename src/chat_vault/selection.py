"""In-memory selection of conversations for one import session."""

import locale
import logging
from typing import Any, Iterable, Literal

from .models import ChatSummary

logger = logging.getLogger(__name__)

SortKey = Literal["updated_at", "created_at", "title"]


def coerce_uids(value: Any) -> set[str]:
    """Normalise a set, list or ``{uid: flag}`` mapping into a set of UIDs."""
    if value is None:
        return set()
    if isinstance(value, dict):
        return {str(uid) for uid, flag in value.items() if flag}
    if isinstance(value, str):
        return {value}
    return {str(uid) for uid in value}


class SelectionState:
    """Which conversations are selected, and which are currently visible.

    The keyword filter and sort order only change :meth:`visible`; they
    never add or remove UIDs from the selection. Operations that name an
    unknown UID do nothing.
    """

    def __init__(self, summaries: list[ChatSummary]):
        self._summaries = list(summaries)
        self._by_uid = {s.uid: s for s in self._summaries}
        self._selected: set[str] = set(self._by_uid)
        self._exclusions_applied = False
        self.keyword = ""
        self.sort_key: SortKey = "updated_at"
        self.descending = True

    @property
    def universe(self) -> list[str]:
        return [s.uid for s in self._summaries]

    def summary(self, uid: str) -> ChatSummary | None:
        return self._by_uid.get(uid)

    def apply_exclusions(self, exclusions: Any) -> None:
        """Deselect globally excluded UIDs. Only the first call has effect."""
        if self._exclusions_applied:
            logger.debug("Exclusions already applied to this selection")
            return
        self._exclusions_applied = True
        self._selected -= coerce_uids(exclusions)

    def set_filter(self, keyword: str | None) -> None:
        self.keyword = (keyword or "").strip().lower()

    def set_sort(self, key: SortKey, descending: bool = True) -> None:
        if key not in ("updated_at", "created_at", "title"):
            logger.warning(f"Unknown sort key '{key}', keeping {self.sort_key}")
            return
        self.sort_key = key
        self.descending = descending

    def _matches(self, summary: ChatSummary) -> bool:
        if not self.keyword:
            return True
        return (
            self.keyword in (summary.title or "").lower()
            or self.keyword in (summary.keywords_sample or "").lower()
        )

    def visible(self) -> list[ChatSummary]:
        rows = [s for s in self._summaries if self._matches(s)]
        if self.sort_key == "title":
            rows.sort(key=lambda s: locale.strxfrm(s.title or ""), reverse=self.descending)
        else:
            rows.sort(key=lambda s: getattr(s, self.sort_key) or 0, reverse=self.descending)
        return rows

    def add(self, uid: str) -> None:
        if uid in self._by_uid:
            self._selected.add(uid)

    def remove(self, uid: str) -> None:
        self._selected.discard(uid)

    def toggle(self, uid: str) -> None:
        if uid in self._selected:
            self.remove(uid)
        else:
            self.add(uid)

    def is_selected(self, uid: str) -> bool:
        return uid in self._selected

    def select_visible(self) -> None:
        self._selected.update(s.uid for s in self.visible())

    def clear_visible(self) -> None:
        self._selected.difference_update(s.uid for s in self.visible())

    def select_all(self) -> None:
        # Bypasses the exclusion list
        self._selected = set(self._by_uid)

    def clear_all(self) -> None:
        self._selected = set()

    def replace(self, uids: Any) -> None:
        self._selected = coerce_uids(uids) & set(self._by_uid)

    def selected(self) -> list[str]:
        """Selected UIDs in summary list order."""
        return [uid for uid in self.universe if uid in self._selected]

    def unselected(self) -> list[str]:
        return [uid for uid in self.universe if uid not in self._selected]

    def __len__(self) -> int:
        return len(self._selected)

    def exclude_selected(self, store, uids: Iterable[str] | None = None) -> list[str]:
        """Write selected (or the given) UIDs into the global exclusion store.

        The selection itself is left unchanged.

        Returns:
            The UIDs written, in summary order for the selected case.
        """
        chosen = self.selected() if uids is None else [u for u in uids if u in self._by_uid]
        if chosen:
            store.add(chosen)
        return chosen
