"""Per-speaker notebook maintenance."""

from __future__ import annotations

import logging

from .models import NOTE_SEPARATOR, Notebook, now_ms
from .selection import truncate_notebook
from .storage import ContextStore
from .tokens import TokenCounter

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 100
MAX_NOTEBOOK_CHARS = 2000


def trim_note(note: str, limit: int = MAX_NOTE_LENGTH) -> str:
    if len(note) <= limit:
        return note
    return note[: limit - 3] + "..."


def _rendered_length(entries: list[str]) -> int:
    if not entries:
        return 0
    return sum(len(e) for e in entries) + len(NOTE_SEPARATOR) * (len(entries) - 1)


class NotebookKeeper:
    """Reads and writes one speaker's notebook through the store."""

    def __init__(
        self,
        store: ContextStore,
        speaker_id: str,
        counter: TokenCounter | None = None,
    ) -> None:
        self._store = store
        self._speaker_id = speaker_id
        self._counter = counter

    @property
    def speaker_id(self) -> str:
        return self._speaker_id

    def notebook(self) -> Notebook:
        return self._store.get_notebook(self._speaker_id) or Notebook(speaker_id=self._speaker_id)

    def entries(self) -> list[str]:
        return list(self.notebook().entries)

    def add_note(self, note: str) -> Notebook:
        """Append *note*, dropping the oldest entries to stay under the size cap."""
        trimmed = trim_note(note.strip())
        if not trimmed:
            return self.notebook()

        entries = self.entries()
        dropped = 0
        while entries and _rendered_length([*entries, trimmed]) > MAX_NOTEBOOK_CHARS:
            entries.pop(0)
            dropped += 1
        if dropped:
            logger.debug("Pruned %d old notes for %s", dropped, self._speaker_id)
            self._store.replace_notebook(
                Notebook(speaker_id=self._speaker_id, entries=entries, updated_at=now_ms())
            )
        return self._store.append_note(self._speaker_id, trimmed)

    def search(self, keyword: str) -> list[str]:
        needle = keyword.lower()
        return [e for e in self.entries() if needle in e.lower()]

    def note_count(self) -> int:
        return len(self.entries())

    def notes_for_prompt(self, max_tokens: int) -> str:
        """Rendered notes that fit *max_tokens*, newest kept first."""
        nb = self.notebook()
        return nb.render(truncate_notebook(nb.entries, max_tokens, self._counter))

    def clear(self) -> None:
        self._store.replace_notebook(Notebook(speaker_id=self._speaker_id))
