from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from billing.errors import PersistenceError, SequenceConflictError


class SequenceAllocator:
    """Per-owner document counters.

    ``allocate_next`` only reads. The counter moves in ``confirm``, which must run
    after the document carrying the number has been written.
    """

    def __init__(self, db_path: str | Path = "data/billing.db") -> None:
        self._db_path = str(db_path)
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=10, isolation_level=None)
        conn.execute("PRAGMA journal_mode=WAL;")
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sequence_counters (
                    owner_id TEXT NOT NULL,
                    series TEXT NOT NULL,
                    last_issued_number INTEGER NOT NULL CHECK (last_issued_number >= 0),
                    created_at_utc TEXT NOT NULL,
                    updated_at_utc TEXT NOT NULL,
                    PRIMARY KEY (owner_id, series)
                )
                """
            )

    def last_issued(self, owner_id: str, series: str = "invoice") -> int:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT last_issued_number FROM sequence_counters
                    WHERE owner_id = ? AND series = ?
                    """,
                    (owner_id, series),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read {series} counter for {owner_id}") from exc
        return int(row[0]) if row else 0

    def allocate_next(self, owner_id: str, series: str = "invoice") -> int:
        return self.last_issued(owner_id, series) + 1

    def confirm(self, owner_id: str, issued_number: int, series: str = "invoice") -> None:
        if issued_number < 1:
            raise ValueError(f"Issued number must be positive: {issued_number}")
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._connect() as conn:
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.execute(
                    """
                    UPDATE sequence_counters
                    SET last_issued_number = ?, updated_at_utc = ?
                    WHERE owner_id = ? AND series = ? AND last_issued_number = ?
                    """,
                    (issued_number, now, owner_id, series, issued_number - 1),
                )
                if cursor.rowcount == 1:
                    conn.execute("COMMIT")
                    return

                row = conn.execute(
                    """
                    SELECT last_issued_number FROM sequence_counters
                    WHERE owner_id = ? AND series = ?
                    """,
                    (owner_id, series),
                ).fetchone()
                if row is None and issued_number == 1:
                    conn.execute(
                        """
                        INSERT INTO sequence_counters
                        (owner_id, series, last_issued_number, created_at_utc, updated_at_utc)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (owner_id, series, issued_number, now, now),
                    )
                    conn.execute("COMMIT")
                    return
                conn.execute("ROLLBACK")
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to confirm {series} number {issued_number} for {owner_id}") from exc

        current = int(row[0]) if row else 0
        raise SequenceConflictError(
            f"{series.capitalize()} number {issued_number} cannot be confirmed: "
            f"counter is at {current}; allocate a new number and retry"
        )

    def reconcile(self, owner_id: str, highest_number: int, series: str = "invoice") -> int:
        """Move a stale counter forward to ``highest_number``. Never moves it back."""
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._connect() as conn:
                conn.execute("BEGIN IMMEDIATE")
                conn.execute(
                    """
                    INSERT INTO sequence_counters
                    (owner_id, series, last_issued_number, created_at_utc, updated_at_utc)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT (owner_id, series) DO UPDATE SET
                        last_issued_number = MAX(last_issued_number, excluded.last_issued_number),
                        updated_at_utc = excluded.updated_at_utc
                    """,
                    (owner_id, series, max(highest_number, 0), now, now),
                )
                row = conn.execute(
                    """
                    SELECT last_issued_number FROM sequence_counters
                    WHERE owner_id = ? AND series = ?
                    """,
                    (owner_id, series),
                ).fetchone()
                conn.execute("COMMIT")
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to reconcile {series} counter for {owner_id}") from exc
        return int(row[0])
