"""SQLite-backed ContextStore — entities stored as JSON documents."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from .errors import StaleMemoryError
from .models import CompactMemory, ContextSnapshot, Interjection, Notebook, Utterance, now_ms
from .storage import ContextStore

_SCHEMA = (
    """CREATE TABLE IF NOT EXISTS compact_memory (
        conversation_id TEXT PRIMARY KEY,
        version INTEGER NOT NULL,
        data TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS utterances (
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL,
        round INTEGER NOT NULL,
        created_at INTEGER NOT NULL,
        data TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS snapshots (
        turn_id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL,
        data TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS notebooks (
        speaker_id TEXT PRIMARY KEY,
        data TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS interjections (
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL,
        created_at INTEGER NOT NULL,
        data TEXT NOT NULL
    )""",
)


class SqliteContextStore(ContextStore):
    """SQLite-backed storage; ``":memory:"`` gives a throwaway database."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = str(db_path)
        self._conn = sqlite3.connect(self._db_path)
        for statement in _SCHEMA:
            self._conn.execute(statement)
        self._conn.commit()

    # -- compact memory ----------------------------------------------------

    def get_compact_memory(self, conversation_id: str) -> CompactMemory | None:
        row = self._conn.execute(
            "SELECT data FROM compact_memory WHERE conversation_id = ?", (conversation_id,)
        ).fetchone()
        return CompactMemory.model_validate_json(row[0]) if row else None

    def save_compact_memory(
        self, memory: CompactMemory, expected_version: int | None
    ) -> CompactMemory:
        cid = memory.conversation_id
        next_version = 0 if expected_version is None else expected_version + 1
        stored = memory.model_copy(update={"version": next_version, "updated_at": now_ms()})
        data = stored.model_dump_json()

        if expected_version is None:
            try:
                self._conn.execute(
                    "INSERT INTO compact_memory (conversation_id, version, data) VALUES (?, ?, ?)",
                    (cid, next_version, data),
                )
            except sqlite3.IntegrityError:
                self._conn.rollback()
                raise StaleMemoryError(cid, -1, self._stored_version(cid)) from None
        else:
            cur = self._conn.execute(
                "UPDATE compact_memory SET version = ?, data = ?"
                " WHERE conversation_id = ? AND version = ?",
                (next_version, data, cid, expected_version),
            )
            if cur.rowcount == 0:
                self._conn.rollback()
                raise StaleMemoryError(cid, expected_version, self._stored_version(cid))
        self._conn.commit()
        return stored

    def _stored_version(self, conversation_id: str) -> int:
        row = self._conn.execute(
            "SELECT version FROM compact_memory WHERE conversation_id = ?", (conversation_id,)
        ).fetchone()
        return row[0] if row else -1

    def delete_compact_memory(self, conversation_id: str) -> bool:
        cur = self._conn.execute(
            "DELETE FROM compact_memory WHERE conversation_id = ?", (conversation_id,)
        )
        self._conn.commit()
        return cur.rowcount > 0

    # -- utterances ----------------------------------------------------------

    def add_utterance(self, utterance: Utterance) -> None:
        self._conn.execute(
            "INSERT INTO utterances (id, conversation_id, round, created_at, data)"
            " VALUES (?, ?, ?, ?, ?)",
            (
                utterance.id,
                utterance.conversation_id,
                utterance.round,
                utterance.created_at,
                utterance.model_dump_json(),
            ),
        )
        self._conn.commit()

    def list_utterances(self, conversation_id: str) -> list[Utterance]:
        rows = self._conn.execute(
            "SELECT data FROM utterances WHERE conversation_id = ? ORDER BY created_at, rowid",
            (conversation_id,),
        ).fetchall()
        return [Utterance.model_validate_json(r[0]) for r in rows]

    def list_utterances_for_round(self, conversation_id: str, round_number: int) -> list[Utterance]:
        rows = self._conn.execute(
            "SELECT data FROM utterances WHERE conversation_id = ? AND round = ?"
            " ORDER BY created_at, rowid",
            (conversation_id, round_number),
        ).fetchall()
        return [Utterance.model_validate_json(r[0]) for r in rows]

    def update_weight(self, utterance_id: str, delta: int) -> Utterance | None:
        row = self._conn.execute(
            "SELECT data FROM utterances WHERE id = ?", (utterance_id,)
        ).fetchone()
        if row is None:
            return None
        updated = Utterance.model_validate_json(row[0]).with_weight(delta)
        self._conn.execute(
            "UPDATE utterances SET data = ? WHERE id = ?", (updated.model_dump_json(), utterance_id)
        )
        self._conn.commit()
        return updated

    # -- snapshots ---------------------------------------------------------

    def create_snapshot(self, snapshot: ContextSnapshot) -> None:
        try:
            self._conn.execute(
                "INSERT INTO snapshots (turn_id, conversation_id, data) VALUES (?, ?, ?)",
                (snapshot.turn_id, snapshot.conversation_id, snapshot.model_dump_json()),
            )
        except sqlite3.IntegrityError:
            self._conn.rollback()
            msg = f"Snapshot for turn {snapshot.turn_id} already exists"
            raise ValueError(msg) from None
        self._conn.commit()

    def get_snapshot(self, turn_id: str) -> ContextSnapshot | None:
        row = self._conn.execute(
            "SELECT data FROM snapshots WHERE turn_id = ?", (turn_id,)
        ).fetchone()
        return ContextSnapshot.model_validate_json(row[0]) if row else None

    # -- notebooks ---------------------------------------------------------

    def get_notebook(self, speaker_id: str) -> Notebook | None:
        row = self._conn.execute(
            "SELECT data FROM notebooks WHERE speaker_id = ?", (speaker_id,)
        ).fetchone()
        return Notebook.model_validate_json(row[0]) if row else None

    def replace_notebook(self, notebook: Notebook) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO notebooks (speaker_id, data) VALUES (?, ?)",
            (notebook.speaker_id, notebook.model_dump_json()),
        )
        self._conn.commit()

    # -- interjections -------------------------------------------------------

    def add_interjection(self, interjection: Interjection) -> None:
        self._conn.execute(
            "INSERT INTO interjections (id, conversation_id, created_at, data) VALUES (?, ?, ?, ?)",
            (
                interjection.id,
                interjection.conversation_id,
                interjection.created_at,
                interjection.model_dump_json(),
            ),
        )
        self._conn.commit()

    def list_interjections(self, conversation_id: str) -> list[Interjection]:
        rows = self._conn.execute(
            "SELECT data FROM interjections WHERE conversation_id = ? ORDER BY created_at, rowid",
            (conversation_id,),
        ).fetchall()
        return [Interjection.model_validate_json(r[0]) for r in rows]

    def mark_interjection_processed(self, interjection_id: str) -> bool:
        row = self._conn.execute(
            "SELECT data FROM interjections WHERE id = ?", (interjection_id,)
        ).fetchone()
        if row is None:
            return False
        updated = Interjection.model_validate_json(row[0]).model_copy(update={"processed": True})
        self._conn.execute(
            "UPDATE interjections SET data = ? WHERE id = ?",
            (updated.model_dump_json(), interjection_id),
        )
        self._conn.commit()
        return True

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()
