"""Importance scoring — rank utterances for context-window eviction."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from .models import Utterance, UtteranceKind, now_ms

CRITICAL_KINDS = frozenset({UtteranceKind.OPENING, UtteranceKind.SUMMARY})


@dataclass(frozen=True)
class ImportanceWeights:
    """Base scores per kind and the bonuses stacked on top of them."""

    opening: int = 150
    summary: int = 120
    interjection: int = 80
    system: int = 70
    response: int = 30
    own_message: int = 40
    addressed_to: int = 50
    weight_multiplier: int = 10
    recency_bonus: int = 20
    first_message: int = 30
    recent_context: int = 25
    recent_context_size: int = 3

    def base(self, kind: UtteranceKind) -> int:
        return {
            UtteranceKind.OPENING: self.opening,
            UtteranceKind.SUMMARY: self.summary,
            UtteranceKind.INTERJECTION: self.interjection,
            UtteranceKind.SYSTEM: self.system,
            UtteranceKind.RESPONSE: self.response,
        }[kind]


@dataclass(frozen=True)
class DecayConfig:
    """Time and round decay applied to non-critical utterances."""

    enabled: bool = True
    half_life_ms: int = 30 * 60 * 1000
    round_decay: float = 0.1
    min_factor: float = 0.3

    def factor(self, age_ms: int, rounds_old: int) -> float:
        if not self.enabled:
            return 1.0
        time_decay = 0.5 ** (max(0, age_ms) / self.half_life_ms)
        round_factor = max(0.0, 1.0 - self.round_decay * max(0, rounds_old))
        return max(self.min_factor, time_decay * round_factor)


@dataclass(frozen=True)
class ScoredUtterance:
    """An utterance with its importance score and criticality flag."""

    utterance: Utterance
    score: int
    critical: bool
    index: int = 0


@dataclass
class ImportanceScorer:
    """Scores candidate utterances for one speaker's turn.

    ``opening`` and ``summary`` utterances are flagged critical by kind, not
    by score, so stacked bonuses never promote an ordinary response into the
    critical tier.
    Critical utterances are never decayed.
    """

    weights: ImportanceWeights = field(default_factory=ImportanceWeights)
    decay: DecayConfig = field(default_factory=DecayConfig)

    def score(
        self,
        utterance: Utterance,
        speaker_id: str | None,
        index: int,
        total: int,
        current_round: int,
        now: int | None = None,
    ) -> ScoredUtterance:
        w = self.weights
        critical = utterance.kind in CRITICAL_KINDS
        score = float(w.base(utterance.kind))

        if speaker_id is not None and utterance.speaker_id == speaker_id:
            score += w.own_message
        if speaker_id is not None and utterance.addressed_to == speaker_id:
            score += w.addressed_to
        score += utterance.weight * w.weight_multiplier

        # oldest 0, newest full bonus
        if total > 1:
            score += w.recency_bonus * index / (total - 1)
        if index == 0:
            score += w.first_message
        if index >= total - w.recent_context_size:
            score += w.recent_context

        if not critical:
            now = now_ms() if now is None else now
            score *= self.decay.factor(
                now - utterance.created_at, current_round - utterance.round
            )

        return ScoredUtterance(
            utterance=utterance,
            score=math.floor(score),
            critical=critical,
            index=index,
        )

    def score_all(
        self,
        candidates: list[Utterance],
        speaker_id: str | None,
        current_round: int,
        now: int | None = None,
    ) -> list[ScoredUtterance]:
        now = now_ms() if now is None else now
        total = len(candidates)
        return [
            self.score(u, speaker_id, i, total, current_round, now)
            for i, u in enumerate(candidates)
        ]
