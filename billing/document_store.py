from __future__ import annotations

import sqlite3
from datetime import date
from pathlib import Path
from typing import Any

from billing.errors import DocumentNotFoundError, PersistenceError, SequenceConflictError
from schemas.billing_schema import BillingDocument


def _to_row(document: BillingDocument) -> tuple[Any, ...]:
    return (
        document.document_id,
        document.owner_id,
        document.kind,
        document.sequence_number,
        document.issue_date.isoformat(),
        document.party_id,
        document.status,
        document.model_dump_json(),
        document.created_at.isoformat(),
        document.updated_at.isoformat(),
    )


class DocumentStore:
    """SQLite store for issued invoices and challans.

    Numbers are unique per owner and kind; a second insert with a taken number
    fails with SequenceConflictError instead of being written.
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
                CREATE TABLE IF NOT EXISTS documents (
                    document_id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    sequence_number INTEGER NOT NULL,
                    issue_date TEXT NOT NULL,
                    party_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    created_at_utc TEXT NOT NULL,
                    updated_at_utc TEXT NOT NULL,
                    UNIQUE (owner_id, kind, sequence_number)
                )
                """
            )

    def create(self, document: BillingDocument) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO documents
                    (document_id, owner_id, kind, sequence_number, issue_date,
                     party_id, status, payload, created_at_utc, updated_at_utc)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    _to_row(document),
                )
        except sqlite3.IntegrityError as exc:
            raise SequenceConflictError(
                f"{document.kind.capitalize()} number {document.sequence_number} already exists"
            ) from exc
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to write {document.kind} {document.document_id}") from exc

    def update(self, document: BillingDocument) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    UPDATE documents
                    SET issue_date = ?, party_id = ?, status = ?, payload = ?, updated_at_utc = ?
                    WHERE document_id = ?
                    """,
                    (
                        document.issue_date.isoformat(),
                        document.party_id,
                        document.status,
                        document.model_dump_json(),
                        document.updated_at.isoformat(),
                        document.document_id,
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to update {document.kind} {document.document_id}") from exc
        if cursor.rowcount == 0:
            raise DocumentNotFoundError(f"Document not found: {document.document_id}")

    def get(self, document_id: str) -> BillingDocument:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT payload FROM documents WHERE document_id = ?",
                    (document_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read document {document_id}") from exc
        if row is None:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        return BillingDocument.model_validate_json(row[0])

    def delete(self, document_id: str) -> None:
        try:
            with self._connect() as conn:
                cursor = conn.execute("DELETE FROM documents WHERE document_id = ?", (document_id,))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to delete document {document_id}") from exc
        if cursor.rowcount == 0:
            raise DocumentNotFoundError(f"Document not found: {document_id}")

    def number_exists(self, owner_id: str, kind: str, sequence_number: int) -> bool:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT 1 FROM documents
                    WHERE owner_id = ? AND kind = ? AND sequence_number = ?
                    """,
                    (owner_id, kind, sequence_number),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to look up {kind} number {sequence_number}") from exc
        return row is not None

    def highest_number(self, owner_id: str, kind: str) -> int:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT MAX(sequence_number) FROM documents WHERE owner_id = ? AND kind = ?",
                    (owner_id, kind),
                ).fetchone()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to read highest {kind} number for {owner_id}") from exc
        return int(row[0]) if row and row[0] is not None else 0

    def list_documents(
        self,
        owner_id: str,
        kind: str,
        *,
        party_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        status: str | None = None,
    ) -> list[BillingDocument]:
        clauses = ["owner_id = ?", "kind = ?"]
        params: list[Any] = [owner_id, kind]
        if party_id:
            clauses.append("party_id = ?")
            params.append(party_id)
        if start_date is not None:
            clauses.append("issue_date >= ?")
            params.append(start_date.isoformat())
        if end_date is not None:
            clauses.append("issue_date <= ?")
            params.append(end_date.isoformat())
        if status:
            clauses.append("status = ?")
            params.append(status)

        query = f"SELECT payload FROM documents WHERE {' AND '.join(clauses)} ORDER BY sequence_number"
        try:
            with self._connect() as conn:
                rows = conn.execute(query, tuple(params)).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to list {kind} documents for {owner_id}") from exc
        return [BillingDocument.model_validate_json(row[0]) for row in rows]
