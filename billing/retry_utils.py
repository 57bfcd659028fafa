from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 0.05
    max_delay_seconds: float = 1.0
    jitter_ratio: float = 0.25

    def delay_for_attempt(self, attempt: int) -> float:
        backoff = min(self.base_delay_seconds * (2 ** (attempt - 1)), self.max_delay_seconds)
        jitter = backoff * self.jitter_ratio * random.random()
        return backoff + jitter


class RetryExhaustedError(RuntimeError):
    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


def retry_on(*error_types: type[Exception]) -> Callable[[Exception], bool]:
    def _should_retry(exc: Exception) -> bool:
        return isinstance(exc, error_types)

    return _should_retry


def run_with_retry(
    operation: Callable[[], T],
    should_retry: Callable[[Exception], bool],
    policy: RetryPolicy | None = None,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> T:
    active = policy or RetryPolicy()
    last_error: Exception | None = None
    attempts = 0
    for attempt in range(1, active.max_attempts + 1):
        attempts = attempt
        try:
            return operation()
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            if not should_retry(exc):
                raise
            if attempt >= active.max_attempts:
                break
            sleep_fn(active.delay_for_attempt(attempt))
    raise RetryExhaustedError(
        f"Operation failed after {attempts} attempt(s)", attempts=attempts
    ) from last_error
