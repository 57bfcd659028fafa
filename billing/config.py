from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from schemas.billing_schema import GST_RATES


def _parse_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    db_path: str = "data/billing.db"
    dead_letter_path: str = "logs/dead_letter.jsonl"
    replay_audit_path: str = "logs/replay_audit.jsonl"
    metrics_path: str = "logs/metrics.jsonl"
    log_level: str = "INFO"
    seller_state: str | None = None
    default_tax_rate: int = 0
    confirm_max_attempts: int = 3
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        default_tax_rate = _parse_int("DEFAULT_TAX_RATE", 0)
        if default_tax_rate not in GST_RATES:
            raise ValueError(
                f"DEFAULT_TAX_RATE must be one of: {', '.join(str(r) for r in GST_RATES)}"
            )

        confirm_max_attempts = _parse_int("CONFIRM_MAX_ATTEMPTS", 3)
        if confirm_max_attempts < 1:
            raise ValueError("CONFIRM_MAX_ATTEMPTS must be at least 1")

        api_port = _parse_int("API_PORT", 8000)
        if not 0 < api_port < 65536:
            raise ValueError("API_PORT must be between 1 and 65535")

        log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
        if log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")

        seller_state = os.getenv("SELLER_STATE")
        if seller_state is not None and not seller_state.strip():
            seller_state = None

        return cls(
            db_path=os.getenv("BILLING_DB_PATH", "data/billing.db"),
            dead_letter_path=os.getenv("DEAD_LETTER_PATH", "logs/dead_letter.jsonl"),
            replay_audit_path=os.getenv("REPLAY_AUDIT_PATH", "logs/replay_audit.jsonl"),
            metrics_path=os.getenv("METRICS_PATH", "logs/metrics.jsonl"),
            log_level=log_level,
            seller_state=seller_state.strip() if seller_state else None,
            default_tax_rate=default_tax_rate,
            confirm_max_attempts=confirm_max_attempts,
            api_host=os.getenv("API_HOST", "0.0.0.0"),
            api_port=api_port,
        )


def load_dotenv(path: str | Path = ".env") -> None:
    env_path = Path(path)
    if not env_path.exists():
        return
    for line in env_path.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#") or "=" not in entry:
            continue
        key, value = entry.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        os.environ.setdefault(key, value)
