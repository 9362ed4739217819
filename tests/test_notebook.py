"""Tests for notebook module — note trimming, pruning and lookup."""

from __future__ import annotations

from parley.notebook import MAX_NOTEBOOK_CHARS, NotebookKeeper, trim_note
from parley.storage import InMemoryContextStore
from parley.tokens import HeuristicTokenEstimator


def _keeper() -> NotebookKeeper:
    return NotebookKeeper(InMemoryContextStore(), "a", HeuristicTokenEstimator())


def test_trim_note():
    assert trim_note("short") == "short"
    trimmed = trim_note("x" * 150)
    assert len(trimmed) == 100
    assert trimmed.endswith("...")


def test_add_note_appends_in_order():
    keeper = _keeper()
    keeper.add_note("Bob prefers tiers")
    keeper.add_note("Carol worries about churn")
    assert keeper.entries() == ["Bob prefers tiers", "Carol worries about churn"]
    assert keeper.note_count() == 2


def test_blank_note_ignored():
    keeper = _keeper()
    keeper.add_note("   ")
    assert keeper.note_count() == 0


def test_oldest_notes_pruned_to_size_cap():
    keeper = _keeper()
    for i in range(25):
        keeper.add_note(f"note-{i:02d}".ljust(100, "x"))
    nb = keeper.notebook()
    assert len(nb.render()) <= MAX_NOTEBOOK_CHARS
    assert keeper.note_count() == 19
    assert nb.entries[-1].startswith("note-24")
    assert nb.entries[0].startswith("note-06")


def test_search_is_case_insensitive():
    keeper = _keeper()
    keeper.add_note("Bob prefers TIERS")
    keeper.add_note("Carol worries about churn")
    assert keeper.search("tiers") == ["Bob prefers TIERS"]
    assert keeper.search("nothing") == []


def test_notes_for_prompt_keeps_newest():
    keeper = _keeper()
    for ch in "abc":
        keeper.add_note(ch * 40)
    assert keeper.notes_for_prompt(20) == "b" * 40 + "\n---\n" + "c" * 40
    assert keeper.notes_for_prompt(1000) == "\n---\n".join(ch * 40 for ch in "abc")
    assert keeper.notes_for_prompt(0) == ""


def test_clear():
    keeper = _keeper()
    keeper.add_note("something")
    keeper.clear()
    assert keeper.note_count() == 0
    assert keeper.notes_for_prompt(100) == ""
