from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any

from schemas.billing_schema import TaxBreakdown

PAISE = Decimal("0.01")
RUPEE = Decimal("1")

# Form inputs at or above this magnitude are treated like unparsable text.
MAX_INPUT = Decimal("1e15")
# Wide enough for products of bounded inputs to quantize exactly.
_PRECISION = 100

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_TWO_HUNDRED = Decimal("200")


def coerce_amount(value: Any) -> Decimal:
    """Parse a quantity, price, discount or rate as entered in the form.

    Anything that is not a finite number below ``MAX_INPUT`` (None, blanks,
    text, NaN, ``1e30``) becomes zero instead of raising, so a half-typed form
    still produces a total.
    """
    if value is None or isinstance(value, bool):
        return _ZERO
    if isinstance(value, Decimal):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return _ZERO
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return _ZERO
    if not parsed.is_finite() or abs(parsed) >= MAX_INPUT:
        return _ZERO
    return parsed


def to_paise(value: Decimal) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return value.quantize(PAISE, rounding=ROUND_HALF_UP)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def line_amount(item: Any) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return coerce_amount(_field(item, "quantity")) * coerce_amount(_field(item, "price"))


def _normalize_state(state: str | None) -> str | None:
    if state is None:
        return None
    text = " ".join(str(state).split())
    return text.casefold() or None


def is_inter_state(seller_state: str | None, buyer_state: str | None) -> bool:
    # Unknown buyer jurisdiction is billed as intra-state.
    buyer = _normalize_state(buyer_state)
    if buyer is None:
        return False
    return buyer != _normalize_state(seller_state)


def compute_breakdown(
    items: Iterable[Any],
    discount_percent: Any,
    tax_rate: Any,
    seller_state: str | None,
    buyer_state: str | None = None,
) -> TaxBreakdown:
    inter_state = is_inter_state(seller_state, buyer_state)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        subtotal = to_paise(sum((line_amount(item) for item in items), _ZERO))
        discount = coerce_amount(discount_percent)
        discount_amount = to_paise(subtotal * discount / _HUNDRED)
        taxable_amount = subtotal - discount_amount

        rate = coerce_amount(tax_rate)
        no_tax = to_paise(_ZERO)
        if inter_state:
            igst = to_paise(taxable_amount * rate / _HUNDRED)
            cgst = sgst = no_tax
        else:
            cgst = sgst = to_paise(taxable_amount * rate / _TWO_HUNDRED)
            igst = no_tax

        total = taxable_amount + cgst + sgst + igst
        rounded_total = to_paise(total.quantize(RUPEE, rounding=ROUND_HALF_UP))
        round_off = rounded_total - total

    return TaxBreakdown(
        subtotal=subtotal,
        discount_percent=discount,
        discount_amount=discount_amount,
        taxable_amount=taxable_amount,
        cgst=cgst,
        sgst=sgst,
        igst=igst,
        total=total,
        rounded_total=rounded_total,
        round_off=round_off,
        inter_state=inter_state,
    )
