"""Tests for the in-memory selection state."""

import pytest

from chat_vault.models import ChatSummary, SourceRef
from chat_vault.selection import SelectionState, coerce_uids


def make_summary(uid, title, created, updated, keywords=None):
    return ChatSummary(
        uid=uid,
        title=title,
        created_at=created,
        updated_at=updated,
        message_count=1,
        source_ref=SourceRef(export_path="a.zip"),
        keywords_sample=keywords,
    )


@pytest.fixture
def summaries():
    return [
        make_summary("A", "xylophone lessons", 1000, 5000),
        make_summary("B", "Bread baking", 2000, 4000, keywords="sourdough starter"),
        make_summary("C", "Cats", 3000, 6000, keywords="feline friends"),
    ]


class TestInitialisation:
    def test_selects_everything(self, summaries):
        selection = SelectionState(summaries)
        assert selection.selected() == ["A", "B", "C"]

    def test_exclusions_removed_on_init(self, summaries):
        selection = SelectionState(summaries)
        selection.apply_exclusions({"B": True})
        assert selection.selected() == ["A", "C"]

    def test_exclusions_apply_only_once(self, summaries):
        selection = SelectionState(summaries)
        selection.apply_exclusions({"B": True})
        selection.select_all()
        selection.apply_exclusions({"B": True, "A": True})
        assert selection.selected() == ["A", "B", "C"]

    def test_select_all_bypasses_exclusions(self, summaries):
        selection = SelectionState(summaries)
        selection.apply_exclusions(["B"])
        selection.select_all()
        assert selection.is_selected("B")


class TestFilterAndSort:
    def test_filter_matches_title_or_keywords(self, summaries):
        selection = SelectionState(summaries)
        selection.set_filter("  FELINE ")
        assert [s.uid for s in selection.visible()] == ["C"]

        selection.set_filter("bread")
        assert [s.uid for s in selection.visible()] == ["B"]

    def test_filter_does_not_change_selection(self, summaries):
        selection = SelectionState(summaries)
        selection.set_filter("cats")
        assert selection.selected() == ["A", "B", "C"]

    def test_sort_by_numeric_fields(self, summaries):
        selection = SelectionState(summaries)

        selection.set_sort("updated_at", descending=True)
        assert [s.uid for s in selection.visible()] == ["C", "A", "B"]

        selection.set_sort("created_at", descending=False)
        assert [s.uid for s in selection.visible()] == ["A", "B", "C"]

    def test_sort_by_title(self, summaries):
        selection = SelectionState(summaries)

        selection.set_sort("title", descending=False)
        ascending = [s.uid for s in selection.visible()]
        selection.set_sort("title", descending=True)
        descending = [s.uid for s in selection.visible()]

        assert ascending[-1] == "A"
        assert descending == list(reversed(ascending))

    def test_unknown_sort_key_is_ignored(self, summaries):
        selection = SelectionState(summaries)
        selection.set_sort("size")
        assert selection.sort_key == "updated_at"


class TestBulkOperations:
    def test_view_operations_only_touch_visible_rows(self, summaries):
        """Selecting then clearing in a filtered view leaves other rows alone."""
        selection = SelectionState(summaries)
        selection.clear_all()
        selection.add("C")

        selection.set_filter("x")
        assert [s.uid for s in selection.visible()] == ["A"]

        selection.select_visible()
        assert selection.selected() == ["A", "C"]

        selection.clear_visible()
        assert selection.selected() == ["C"]

    def test_global_operations_ignore_filter(self, summaries):
        selection = SelectionState(summaries)
        selection.set_filter("cats")

        selection.clear_all()
        assert selection.selected() == []
        selection.select_all()
        assert selection.selected() == ["A", "B", "C"]

    def test_unknown_uids_are_no_ops(self, summaries):
        selection = SelectionState(summaries)
        selection.add("Z")
        selection.remove("Z")
        selection.toggle("Z")
        assert selection.selected() == ["A", "B", "C"]
        assert not selection.is_selected("Z")

    def test_toggle_and_replace(self, summaries):
        selection = SelectionState(summaries)
        selection.toggle("A")
        assert selection.unselected() == ["A"]

        selection.replace({"B": True, "Z": True, "C": False})
        assert selection.selected() == ["B"]
        assert len(selection) == 1


class TestExcludeSelected:
    class FakeStore:
        def __init__(self):
            self.added = []

        def add(self, uids):
            self.added.extend(uids)

    def test_writes_selection_without_changing_it(self, summaries):
        store = self.FakeStore()
        selection = SelectionState(summaries)
        selection.remove("B")

        assert selection.exclude_selected(store) == ["A", "C"]
        assert store.added == ["A", "C"]
        assert selection.selected() == ["A", "C"]

    def test_curated_subset(self, summaries):
        store = self.FakeStore()
        selection = SelectionState(summaries)

        selection.exclude_selected(store, ["B", "missing"])
        assert store.added == ["B"]


def test_coerce_uids_accepts_many_shapes():
    assert coerce_uids({"a": True, "b": False}) == {"a"}
    assert coerce_uids(["a", "b"]) == {"a", "b"}
    assert coerce_uids({"a"}) == {"a"}
    assert coerce_uids("a") == {"a"}
    assert coerce_uids(None) == set()
