"""Exception hierarchy for the parley context engine."""

from __future__ import annotations


class ParleyError(Exception):
    """Base class for all engine errors."""


class DistillationError(ParleyError):
    """Compaction failed; the distillation cursor was not advanced."""

    def __init__(self, message: str, conversation_id: str | None = None) -> None:
        super().__init__(message)
        self.conversation_id = conversation_id


class DistillationParseError(DistillationError):
    """The summarization result could not be parsed into a distillation."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class StaleMemoryError(ParleyError):
    """A compact-memory write lost an optimistic-concurrency race."""

    def __init__(self, conversation_id: str, expected: int, actual: int) -> None:
        msg = (
            f"Compact memory for {conversation_id} is at version {actual}, "
            f"expected {expected}"
        )
        super().__init__(msg)
        self.conversation_id = conversation_id
        self.expected = expected
        self.actual = actual


class InterjectionValidationError(ParleyError):
    """User guidance text was rejected at intake."""
