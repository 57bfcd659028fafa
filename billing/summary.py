from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from billing.number_to_words import to_words
from billing.tax_calculator import to_paise
from schemas.billing_schema import BillingDocument, TaxBreakdown


def format_money(value: Decimal) -> str:
    return f"{to_paise(value):.2f}"


def _format_rate(value: Decimal) -> str:
    return f"{value.normalize():f}"


def _words_or_none(amount: Decimal) -> str | None:
    # Live previews can go negative (e.g. a discount over 100%) before validation.
    return to_words(amount) if amount >= 0 else None


def build_amount_summary(breakdown: TaxBreakdown, tax_rate: int | Decimal) -> dict[str, Any]:
    """Totals block as printed on the invoice, with the amount in words.

    Round-off is shown as an absolute value plus a direction: ``add`` when the
    total was rounded up, ``less`` when it was rounded down.
    """
    rate = Decimal(tax_rate)
    if breakdown.round_off > 0:
        direction = "add"
    elif breakdown.round_off < 0:
        direction = "less"
    else:
        direction = "none"

    inter_state = breakdown.inter_state
    half_rate = _format_rate(rate / 2) if rate and not inter_state else None
    return {
        "subtotal": format_money(breakdown.subtotal),
        "discount_percent": _format_rate(breakdown.discount_percent),
        "discount_amount": format_money(breakdown.discount_amount),
        "taxable_amount": format_money(breakdown.taxable_amount),
        "cgst_rate": half_rate,
        "cgst": format_money(breakdown.cgst),
        "sgst_rate": half_rate,
        "sgst": format_money(breakdown.sgst),
        "igst_rate": _format_rate(rate) if rate and inter_state else None,
        "igst": format_money(breakdown.igst),
        "total": format_money(breakdown.total),
        "rounded_total": format_money(breakdown.rounded_total),
        "round_off": format_money(abs(breakdown.round_off)),
        "round_off_direction": direction,
        "amount_in_words": _words_or_none(breakdown.rounded_total),
    }


def summarize_documents(documents: Iterable[BillingDocument]) -> dict[str, Any]:
    """Statement totals for a selection of documents (list PDF footer)."""
    count = 0
    total_quantity = Decimal("0")
    total_amount = Decimal("0")
    grand_total = Decimal("0")
    for document in documents:
        count += 1
        for item in document.items:
            total_quantity += item.quantity
            total_amount += item.amount
        grand_total += document.breakdown.rounded_total

    return {
        "document_count": count,
        "total_quantity": format_money(total_quantity),
        "total_amount": format_money(total_amount),
        "grand_total": format_money(grand_total),
        "amount_in_words": _words_or_none(grand_total),
    }
