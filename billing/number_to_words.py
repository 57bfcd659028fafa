from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Final

_ONES: Final = ("Zero", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine")
_TEENS: Final = (
    "Ten",
    "Eleven",
    "Twelve",
    "Thirteen",
    "Fourteen",
    "Fifteen",
    "Sixteen",
    "Seventeen",
    "Eighteen",
    "Nineteen",
)
_TENS: Final = ("", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety")

# Indian grouping, largest first.
_DENOMINATIONS: Final = (
    (10_000_000, "Crore"),
    (100_000, "Lakh"),
    (1_000, "Thousand"),
)


def _convert(number: int) -> str:
    if number < 10:
        return _ONES[number]
    if number < 20:
        return _TEENS[number - 10]
    if number < 100:
        tens, ones = divmod(number, 10)
        return _TENS[tens] + (f" {_ONES[ones]}" if ones else "")
    for size, label in _DENOMINATIONS:
        if number >= size:
            head, rest = divmod(number, size)
            words = f"{_convert(head)} {label}"
            return f"{words} {_convert(rest)}" if rest else words
    hundreds, rest = divmod(number, 100)
    words = f"{_ONES[hundreds]} Hundred"
    return f"{words} and {_convert(rest)}" if rest else words


def to_words(amount: Decimal | int | float | str) -> str:
    """Spell out a rupee amount, e.g. ``100 -> "One Hundred Rupees"``."""
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Amount is not a number: {amount!r}") from exc
    if not value.is_finite() or value < 0:
        raise ValueError(f"Amount must be finite and non-negative: {amount!r}")

    rupees = int(value)
    paise = int(((value - rupees) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if paise == 100:
        rupees += 1
        paise = 0

    parts: list[str] = []
    if rupees:
        parts.append(f"{_convert(rupees)} Rupees")
    if paise:
        parts.append(f"{_convert(paise)} Paise")
    return " and ".join(parts) or "Zero Rupees"
