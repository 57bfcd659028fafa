from __future__ import annotations

from typing import Final


class InvalidTransitionError(ValueError):
    pass


ALLOWED_TRANSITIONS: Final[dict[str, set[str]]] = {
    "pending": {"paid"},
    "paid": {"pending"},
}


def can_transition(from_status: str, to_status: str) -> bool:
    from_norm = from_status.strip().lower()
    to_norm = to_status.strip().lower()
    return to_norm in ALLOWED_TRANSITIONS.get(from_norm, set())


def transition_status(from_status: str, to_status: str) -> str:
    from_norm = from_status.strip().lower()
    to_norm = to_status.strip().lower()

    if from_norm not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(f"Unknown status: {from_status}")
    if to_norm not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(f"Unknown status: {to_status}")
    if to_norm not in ALLOWED_TRANSITIONS[from_norm]:
        raise InvalidTransitionError(f"Invalid transition: {from_norm} -> {to_norm}")
    return to_norm
