from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

CONFIRM_PENDING = "CONFIRM_PENDING"


class DeadLetterStore:
    """Append-only JSONL log of counter confirms that could not be applied."""

    def __init__(self, file_path: str | Path = "logs/dead_letter.jsonl") -> None:
        self._path = Path(file_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def write_failure(self, payload: dict[str, Any]) -> None:
        event = {
            "recorded_at_utc": datetime.now(timezone.utc).isoformat(),
            **payload,
        }
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(event, ensure_ascii=True) + "\n")

    def record_pending_confirm(
        self,
        *,
        owner_id: str,
        series: str,
        sequence_number: int,
        document_id: str,
        error_message: str,
    ) -> None:
        self.write_failure(
            {
                "status": CONFIRM_PENDING,
                "owner_id": owner_id,
                "series": series,
                "sequence_number": sequence_number,
                "document_id": document_id,
                "error_message": error_message,
            }
        )

    def list_failures(self, status: str | None = None, owner_id: str | None = None) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        items: list[dict[str, Any]] = []
        for line in self._path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            event = json.loads(line)
            if status and event.get("status") != status:
                continue
            if owner_id and event.get("owner_id") != owner_id:
                continue
            items.append(event)
        return items
