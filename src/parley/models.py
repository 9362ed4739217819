"""Conversation entities consumed and produced by the context engine."""

from __future__ import annotations

import time
import uuid
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

NOTE_SEPARATOR = "\n---\n"


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class UtteranceKind(StrEnum):
    """Structural role of an utterance in the discussion."""

    RESPONSE = "response"
    SUMMARY = "summary"
    INTERJECTION = "interjection"
    SYSTEM = "system"
    OPENING = "opening"


class FactCategory(StrEnum):
    DECISION = "decision"
    CONSTRAINT = "constraint"
    DEFINITION = "definition"
    CONSENSUS = "consensus"
    DISAGREEMENT = "disagreement"
    ACTION = "action"


class Utterance(BaseModel):
    """One message in a conversation. Only ``weight`` changes after creation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    conversation_id: str
    speaker_id: str | None = None
    content: str
    addressed_to: str | None = None
    round: int = 0
    weight: int = 0
    kind: UtteranceKind = UtteranceKind.RESPONSE
    created_at: int = Field(default_factory=now_ms)

    def with_weight(self, delta: int) -> Utterance:
        """Return a copy with a user up/down-vote applied."""
        return self.model_copy(update={"weight": self.weight + delta})


class Speaker(BaseModel):
    """Display information for a participant."""

    id: str
    name: str
    is_coordinator: bool = False
    role: str = ""
    persona: str = ""


class Interjection(BaseModel):
    """User guidance queued for the participants."""

    id: str = Field(default_factory=_new_id)
    conversation_id: str = ""
    content: str
    after_round: int = 0
    processed: bool = False
    created_at: int = Field(default_factory=now_ms)


class Notebook(BaseModel):
    """Per-speaker personal notes, oldest first."""

    speaker_id: str
    entries: list[str] = Field(default_factory=list)
    updated_at: int = Field(default_factory=now_ms)

    @classmethod
    def from_text(cls, speaker_id: str, text: str) -> Notebook:
        """Import a legacy separator-joined notes string."""
        entries = [e for e in text.split(NOTE_SEPARATOR) if e] if text else []
        return cls(speaker_id=speaker_id, entries=entries)

    def render(self, entries: list[str] | None = None) -> str:
        return NOTE_SEPARATOR.join(self.entries if entries is None else entries)


class PinnedFact(BaseModel):
    """A distilled anchor that should survive compaction."""

    id: str
    content: str
    category: FactCategory = FactCategory.DEFINITION
    source: str | None = None
    round: int = 0
    importance: int = Field(default=5, ge=1, le=10)


class DistillationCursor(BaseModel):
    """How much history has already been folded into compact memory."""

    last_round: int = 0
    last_utterance_id: str | None = None

    def after(self, history: list[Utterance]) -> list[Utterance]:
        """Utterances in *history* strictly past this cursor.

        The cursor utterance is located by id. A cursor that never moved
        covers nothing; one whose utterance is missing from *history* falls
        back to comparing rounds.
        """
        if self.last_utterance_id is None:
            return list(history)
        for i, utterance in enumerate(history):
            if utterance.id == self.last_utterance_id:
                return history[i + 1 :]
        return [u for u in history if u.round > self.last_round]


class CompactMemory(BaseModel):
    """Structured, periodically recompacted memory of a conversation."""

    conversation_id: str
    distilled_summary: str = ""
    current_stance: str = ""
    key_decisions: list[str] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)
    pinned_facts: list[PinnedFact] = Field(default_factory=list)
    cursor: DistillationCursor = Field(default_factory=DistillationCursor)
    total_distilled: int = 0
    version: int = 0
    updated_at: int = Field(default_factory=now_ms)


class ContextSnapshot(BaseModel):
    """Audit record of what one turn's prompt contained."""

    turn_id: str
    conversation_id: str
    compact_memory_used: bool = False
    distilled_summary: str | None = None
    current_stance: str | None = None
    key_decisions: list[str] | None = None
    open_questions: list[str] | None = None
    pinned_facts: list[PinnedFact] | None = None
    utterances_included: int = 0
    notebook_used: bool = False
    created_at: int = Field(default_factory=now_ms)


class ConversationInfo(BaseModel):
    """Conversation-level settings the assembler and compactor read."""

    id: str
    subject: str = ""
    opening_statement: str = ""
    max_rounds: int | None = None
    recommended_rounds: int | None = None
    round_scope_reasoning: str = ""
    starting_strategy: str | None = None
    depth: str | None = None
    target_language: str | None = None

    @property
    def effective_max_rounds(self) -> int | None:
        return self.recommended_rounds or self.max_rounds
