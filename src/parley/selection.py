"""Budgeted selection of utterances, interjections and notebook entries."""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import NOTE_SEPARATOR, Interjection, Utterance
from .scoring import ImportanceScorer, ScoredUtterance
from .tokens import TokenCounter, count_tokens

FORMATTING_OVERHEAD = 10


def utterance_cost(utterance: Utterance, counter: TokenCounter | None = None) -> int:
    return count_tokens(utterance.content, counter) + FORMATTING_OVERHEAD


@dataclass
class MessageSelector:
    """Greedy, eviction-style chooser for conversation history.

    Critical utterances go in first, in their original order, as long as
    each still fits. Remaining budget is filled with regular utterances by
    descending score. The result is always chronological.
    """

    scorer: ImportanceScorer = field(default_factory=ImportanceScorer)
    counter: TokenCounter | None = None

    def select(
        self,
        candidates: list[Utterance],
        budget: int,
        speaker_id: str | None,
        current_round: int,
        now: int | None = None,
    ) -> list[Utterance]:
        if budget <= 0 or not candidates:
            return []
        scored = self.scorer.score_all(candidates, speaker_id, current_round, now)
        return self.select_scored(scored, budget)

    def select_scored(self, scored: list[ScoredUtterance], budget: int) -> list[Utterance]:
        if budget <= 0 or not scored:
            return []

        critical = [s for s in scored if s.critical]
        regular = [s for s in scored if not s.critical]

        selected: list[Utterance] = []
        remaining = budget
        for item in critical:
            cost = utterance_cost(item.utterance, self.counter)
            if cost > remaining:
                continue
            selected.append(item.utterance)
            remaining -= cost

        # sort is stable: equal scores keep their original order
        for item in sorted(regular, key=lambda s: s.score, reverse=True):
            cost = utterance_cost(item.utterance, self.counter)
            if cost > remaining:
                continue  # skip this one, try smaller ones
            selected.append(item.utterance)
            remaining -= cost

        selected.sort(key=lambda u: u.created_at)
        return selected


def select_interjections(
    interjections: list[Interjection],
    budget: int,
    counter: TokenCounter | None = None,
) -> list[Interjection]:
    """Keep the most recent user guidance that fits, in chronological order."""
    if budget <= 0 or not interjections:
        return []
    kept: list[Interjection] = []
    remaining = budget
    for item in sorted(interjections, key=lambda i: i.created_at, reverse=True):
        cost = count_tokens(item.content, counter) + FORMATTING_OVERHEAD
        if cost > remaining:
            continue
        kept.append(item)
        remaining -= cost
    kept.reverse()
    return kept


def truncate_notebook(
    entries: list[str],
    budget: int,
    counter: TokenCounter | None = None,
) -> list[str]:
    """Keep the newest notebook entries that fit within *budget*.

    Entries are charged individually; the walk stops at the first entry
    (from the newest backwards) that would overflow.
    """
    if budget <= 0 or not entries:
        return []
    if count_tokens(NOTE_SEPARATOR.join(entries), counter) <= budget:
        return list(entries)

    kept: list[str] = []
    remaining = budget
    for entry in reversed(entries):
        cost = count_tokens(entry, counter)
        if cost > remaining:
            break
        kept.append(entry)
        remaining -= cost
    kept.reverse()
    return kept
