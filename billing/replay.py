from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from billing.dead_letter import CONFIRM_PENDING, DeadLetterStore
from billing.sequence_allocator import SequenceAllocator


def replay_pending_confirms(
    *,
    dead_letter_path: str | Path = "logs/dead_letter.jsonl",
    audit_path: str | Path = "logs/replay_audit.jsonl",
    db_path: str | Path = "data/billing.db",
) -> dict[str, int]:
    """Apply counter confirms that failed after their document was saved.

    Numbers of documents deleted since then still count as issued.
    Safe to run repeatedly: reconciling only ever moves a counter forward.
    """
    dead = DeadLetterStore(file_path=dead_letter_path)
    allocator = SequenceAllocator(db_path=db_path)
    audit_file = Path(audit_path)
    audit_file.parent.mkdir(parents=True, exist_ok=True)

    entries = dead.list_failures(status=CONFIRM_PENDING)
    summary = {"confirmed": 0, "skipped_invalid": 0}

    with audit_file.open("a", encoding="utf-8") as fh:
        for item in entries:
            owner_id = item.get("owner_id")
            series = item.get("series")
            sequence_number = item.get("sequence_number")
            document_id = item.get("document_id")
            if not owner_id or not series or not document_id or not isinstance(sequence_number, int):
                summary["skipped_invalid"] += 1
                _write_audit(
                    fh,
                    document_id=document_id,
                    outcome="skipped_invalid",
                    reason="missing owner_id/series/sequence_number/document_id",
                )
                continue

            counter = allocator.reconcile(owner_id, sequence_number, series=series)
            summary["confirmed"] += 1
            _write_audit(
                fh,
                document_id=document_id,
                outcome="confirmed",
                reason=f"counter at {counter}",
            )

    return summary


def _write_audit(
    fh: Any,
    *,
    document_id: str | None,
    outcome: str,
    reason: str,
) -> None:
    event = {
        "recorded_at_utc": datetime.now(timezone.utc).isoformat(),
        "document_id": document_id,
        "status": CONFIRM_PENDING,
        "outcome": outcome,
        "reason": reason,
    }
    fh.write(json.dumps(event, ensure_ascii=True) + "\n")
