"""Intake and lookup helpers for user interjections."""

from __future__ import annotations

from .errors import InterjectionValidationError
from .models import Interjection

MAX_INTERJECTION_LENGTH = 2000


def validate_interjection(content: str) -> str:
    """Return *content* unchanged if it is acceptable guidance.

    Raises:
        InterjectionValidationError: If it is blank or too long.
    """
    if not content or not content.strip():
        msg = "Content cannot be empty"
        raise InterjectionValidationError(msg)
    if len(content) > MAX_INTERJECTION_LENGTH:
        msg = f"Content too long (max {MAX_INTERJECTION_LENGTH} characters)"
        raise InterjectionValidationError(msg)
    return content


def new_interjection(conversation_id: str, content: str, after_round: int = 0) -> Interjection:
    return Interjection(
        conversation_id=conversation_id,
        content=validate_interjection(content),
        after_round=after_round,
    )


def pending_interjections(items: list[Interjection]) -> list[Interjection]:
    return [i for i in items if not i.processed]


def interjections_for_round(items: list[Interjection], round_number: int) -> list[Interjection]:
    return [i for i in items if i.after_round == round_number]
