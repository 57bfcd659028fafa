from __future__ import annotations

from decimal import Decimal
from typing import Any

from schemas.billing_schema import DocumentDraft, TaxBreakdown


def validate_draft_payload(payload: dict[str, Any]) -> DocumentDraft:
    return DocumentDraft.model_validate(payload)


def evaluate_breakdown_rules(breakdown: TaxBreakdown, tax_rate: int | Decimal) -> list[dict[str, Any]]:
    violations: list[dict[str, Any]] = []

    expected_taxable = breakdown.subtotal - breakdown.discount_amount
    if breakdown.taxable_amount != expected_taxable:
        violations.append(
            {
                "code": "taxable_mismatch",
                "severity": "error",
                "message": "subtotal - discount_amount does not match taxable_amount",
                "expected": str(expected_taxable),
                "actual": str(breakdown.taxable_amount),
            }
        )

    has_split = breakdown.cgst != 0 or breakdown.sgst != 0
    if has_split and breakdown.igst != 0:
        violations.append(
            {
                "code": "tax_split_conflict",
                "severity": "error",
                "message": "cgst/sgst and igst are both charged",
            }
        )
    if (breakdown.inter_state and has_split) or (not breakdown.inter_state and breakdown.igst != 0):
        violations.append(
            {
                "code": "jurisdiction_mismatch",
                "severity": "error",
                "message": "tax components do not match the inter_state flag",
            }
        )
    if breakdown.cgst != breakdown.sgst:
        violations.append(
            {
                "code": "cgst_sgst_unequal",
                "severity": "error",
                "message": "cgst and sgst must be equal halves",
            }
        )

    expected_total = breakdown.taxable_amount + breakdown.cgst + breakdown.sgst + breakdown.igst
    if breakdown.total != expected_total:
        violations.append(
            {
                "code": "total_mismatch",
                "severity": "error",
                "message": "taxable_amount + taxes does not match total",
                "expected": str(expected_total),
                "actual": str(breakdown.total),
            }
        )

    if breakdown.rounded_total != breakdown.rounded_total.to_integral_value():
        violations.append(
            {
                "code": "rounded_total_fractional",
                "severity": "error",
                "message": "rounded_total must be a whole rupee amount",
            }
        )
    if breakdown.rounded_total - breakdown.total != breakdown.round_off:
        violations.append(
            {
                "code": "round_off_mismatch",
                "severity": "error",
                "message": "rounded_total - total does not match round_off",
            }
        )

    if Decimal(tax_rate) > 0 and breakdown.taxable_amount > 0 and not has_split and breakdown.igst == 0:
        violations.append(
            {
                "code": "tax_not_charged",
                "severity": "warning",
                "message": "tax rate is set but no tax was charged",
            }
        )
    return violations


def validate_breakdown(breakdown: TaxBreakdown, tax_rate: int | Decimal) -> dict[str, Any]:
    violations = evaluate_breakdown_rules(breakdown, tax_rate)
    return {
        "violations": violations,
        "is_valid": not any(v["severity"] == "error" for v in violations),
    }
