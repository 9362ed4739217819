"""Storage collaborator — persistence interface for engine entities."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .errors import StaleMemoryError
from .models import (
    CompactMemory,
    ContextSnapshot,
    Interjection,
    Notebook,
    Utterance,
    now_ms,
)


class ContextStore(ABC):
    """Abstract store for compact memory, utterances, snapshots and notes.

    Compact-memory writes are optimistic: ``save_compact_memory`` succeeds
    only if the stored version still equals ``expected_version``, and the
    stored copy gets ``expected_version + 1``.
    """

    # -- compact memory ----------------------------------------------------

    @abstractmethod
    def get_compact_memory(self, conversation_id: str) -> CompactMemory | None:
        """Return the conversation's compact memory, if one was created."""

    def get_or_create_compact_memory(self, conversation_id: str) -> CompactMemory:
        """Return the compact memory, creating an empty record on first use."""
        existing = self.get_compact_memory(conversation_id)
        if existing is not None:
            return existing
        created = CompactMemory(conversation_id=conversation_id)
        try:
            return self.save_compact_memory(created, expected_version=None)
        except StaleMemoryError:
            # someone else created it first
            stored = self.get_compact_memory(conversation_id)
            if stored is None:
                raise
            return stored

    @abstractmethod
    def save_compact_memory(
        self, memory: CompactMemory, expected_version: int | None
    ) -> CompactMemory:
        """Persist *memory*; ``expected_version=None`` means "must not exist yet".

        Raises:
            StaleMemoryError: If the stored version does not match.
        """

    @abstractmethod
    def delete_compact_memory(self, conversation_id: str) -> bool:
        """Remove the record. Returns True if found and removed."""

    # -- utterances ----------------------------------------------------------

    @abstractmethod
    def add_utterance(self, utterance: Utterance) -> None: ...

    @abstractmethod
    def list_utterances(self, conversation_id: str) -> list[Utterance]:
        """All utterances of a conversation in creation order."""

    def list_utterances_for_round(self, conversation_id: str, round_number: int) -> list[Utterance]:
        return [u for u in self.list_utterances(conversation_id) if u.round == round_number]

    @abstractmethod
    def update_weight(self, utterance_id: str, delta: int) -> Utterance | None:
        """Apply a user vote. Returns the updated utterance, or None if unknown."""

    # -- snapshots ---------------------------------------------------------

    @abstractmethod
    def create_snapshot(self, snapshot: ContextSnapshot) -> None:
        """Write-once: a second snapshot for the same turn raises ``ValueError``."""

    @abstractmethod
    def get_snapshot(self, turn_id: str) -> ContextSnapshot | None: ...

    # -- notebooks ---------------------------------------------------------

    @abstractmethod
    def get_notebook(self, speaker_id: str) -> Notebook | None: ...

    @abstractmethod
    def replace_notebook(self, notebook: Notebook) -> None: ...

    def append_note(self, speaker_id: str, note: str) -> Notebook:
        current = self.get_notebook(speaker_id) or Notebook(speaker_id=speaker_id)
        updated = Notebook(
            speaker_id=speaker_id, entries=[*current.entries, note], updated_at=now_ms()
        )
        self.replace_notebook(updated)
        return updated

    # -- interjections -------------------------------------------------------

    @abstractmethod
    def add_interjection(self, interjection: Interjection) -> None: ...

    @abstractmethod
    def list_interjections(self, conversation_id: str) -> list[Interjection]: ...

    @abstractmethod
    def mark_interjection_processed(self, interjection_id: str) -> bool: ...


def _check_version(
    conversation_id: str, stored: CompactMemory | None, expected: int | None
) -> None:
    actual = stored.version if stored is not None else None
    if actual != expected:
        raise StaleMemoryError(
            conversation_id,
            -1 if expected is None else expected,
            -1 if actual is None else actual,
        )


class InMemoryContextStore(ContextStore):
    """Dict-based in-memory implementation (for testing and development)."""

    def __init__(self) -> None:
        self._memories: dict[str, CompactMemory] = {}
        self._utterances: dict[str, list[Utterance]] = {}
        self._snapshots: dict[str, ContextSnapshot] = {}
        self._notebooks: dict[str, Notebook] = {}
        self._interjections: dict[str, Interjection] = {}

    def get_compact_memory(self, conversation_id: str) -> CompactMemory | None:
        memory = self._memories.get(conversation_id)
        return memory.model_copy(deep=True) if memory is not None else None

    def save_compact_memory(
        self, memory: CompactMemory, expected_version: int | None
    ) -> CompactMemory:
        _check_version(memory.conversation_id, self._memories.get(memory.conversation_id), expected_version)
        next_version = 0 if expected_version is None else expected_version + 1
        stored = memory.model_copy(update={"version": next_version, "updated_at": now_ms()}, deep=True)
        self._memories[memory.conversation_id] = stored
        return stored.model_copy(deep=True)

    def delete_compact_memory(self, conversation_id: str) -> bool:
        return self._memories.pop(conversation_id, None) is not None

    def add_utterance(self, utterance: Utterance) -> None:
        self._utterances.setdefault(utterance.conversation_id, []).append(utterance)

    def list_utterances(self, conversation_id: str) -> list[Utterance]:
        return sorted(self._utterances.get(conversation_id, []), key=lambda u: u.created_at)

    def update_weight(self, utterance_id: str, delta: int) -> Utterance | None:
        for items in self._utterances.values():
            for i, utterance in enumerate(items):
                if utterance.id == utterance_id:
                    items[i] = utterance.with_weight(delta)
                    return items[i]
        return None

    def create_snapshot(self, snapshot: ContextSnapshot) -> None:
        if snapshot.turn_id in self._snapshots:
            msg = f"Snapshot for turn {snapshot.turn_id} already exists"
            raise ValueError(msg)
        self._snapshots[snapshot.turn_id] = snapshot

    def get_snapshot(self, turn_id: str) -> ContextSnapshot | None:
        return self._snapshots.get(turn_id)

    def get_notebook(self, speaker_id: str) -> Notebook | None:
        return self._notebooks.get(speaker_id)

    def replace_notebook(self, notebook: Notebook) -> None:
        self._notebooks[notebook.speaker_id] = notebook

    def add_interjection(self, interjection: Interjection) -> None:
        self._interjections[interjection.id] = interjection

    def list_interjections(self, conversation_id: str) -> list[Interjection]:
        items = [i for i in self._interjections.values() if i.conversation_id == conversation_id]
        return sorted(items, key=lambda i: i.created_at)

    def mark_interjection_processed(self, interjection_id: str) -> bool:
        item = self._interjections.get(interjection_id)
        if item is None:
            return False
        self._interjections[interjection_id] = item.model_copy(update={"processed": True})
        return True
