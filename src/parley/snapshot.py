"""Snapshot recorder — audit trail of what each turn's prompt contained."""

from __future__ import annotations

import logging

from .assembler import AssembledContext
from .models import ContextSnapshot
from .storage import ContextStore
from .telemetry import trace_snapshot

logger = logging.getLogger(__name__)


def build_snapshot(
    turn_id: str, conversation_id: str, assembled: AssembledContext
) -> ContextSnapshot:
    """Describe one assembled prompt.

    Everything is read back from *assembled*: memory fields come from the
    compact memory the assembler injected, and the notebook counts as used
    only if entries survived truncation.
    """
    memory = assembled.compact_memory if assembled.compact_memory_used else None
    snapshot = ContextSnapshot(
        turn_id=turn_id,
        conversation_id=conversation_id,
        compact_memory_used=memory is not None,
        utterances_included=len(assembled.utterances),
        notebook_used=bool(assembled.notebook_entries),
    )
    if memory is not None:
        snapshot = snapshot.model_copy(
            update={
                "distilled_summary": memory.distilled_summary,
                "current_stance": memory.current_stance,
                "key_decisions": list(memory.key_decisions),
                "open_questions": list(memory.open_questions),
                "pinned_facts": [f.model_copy() for f in memory.pinned_facts],
            }
        )
    return snapshot


class SnapshotRecorder:
    """Best-effort snapshot writer; a failed write never fails the turn."""

    def __init__(self, store: ContextStore) -> None:
        self._store = store

    def record(
        self, turn_id: str, conversation_id: str, assembled: AssembledContext
    ) -> ContextSnapshot | None:
        try:
            with trace_snapshot(turn_id):
                snapshot = build_snapshot(turn_id, conversation_id, assembled)
                self._store.create_snapshot(snapshot)
        except Exception:  # noqa: BLE001
            logger.warning("Failed to record context snapshot for turn %s", turn_id, exc_info=True)
            return None
        logger.debug(
            "Recorded snapshot for turn %s (%d utterances, compact memory %s)",
            turn_id,
            snapshot.utterances_included,
            "used" if snapshot.compact_memory_used else "unused",
        )
        return snapshot
