from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from billing.document_store import DocumentStore
from billing.errors import DocumentNotFoundError, SequenceConflictError
from billing.tax_calculator import compute_breakdown
from schemas.billing_schema import BillingDocument, LineItem, PartySnapshot


def _document(
    document_id: str,
    sequence_number: int,
    *,
    owner_id: str = "owner-1",
    kind: str = "invoice",
    party_id: str = "party-1",
    issue_date: date = date(2024, 4, 1),
    status: str = "pending",
) -> BillingDocument:
    items = [LineItem(name="Cotton Fabric", hsn="5208", quantity=Decimal("2"), price=Decimal("500"))]
    now = datetime(2024, 4, 1, 10, 0, tzinfo=timezone.utc)
    return BillingDocument(
        document_id=document_id,
        owner_id=owner_id,
        kind=kind,
        sequence_number=sequence_number,
        issue_date=issue_date,
        party_id=party_id,
        party=PartySnapshot(party_id=party_id, company_name="Shree Traders", state="Gujarat"),
        items=items,
        discount_percent=Decimal("0"),
        tax_rate=18,
        breakdown=compute_breakdown(items, 0, 18, "Gujarat", "Gujarat"),
        status=status,
        created_at=now,
        updated_at=now,
    )


def test_create_and_get_round_trips_decimals(tmp_path: Path) -> None:
    store = DocumentStore(db_path=tmp_path / "billing.db")
    store.create(_document("doc-1", 1))

    loaded = store.get("doc-1")
    assert loaded.sequence_number == 1
    assert loaded.breakdown.cgst == Decimal("90.00")
    assert loaded.breakdown.rounded_total == Decimal("1180.00")
    assert loaded.party.company_name == "Shree Traders"


def test_duplicate_number_for_same_owner_conflicts(tmp_path: Path) -> None:
    store = DocumentStore(db_path=tmp_path / "billing.db")
    store.create(_document("doc-1", 1))

    with pytest.raises(SequenceConflictError, match="Invoice number 1 already exists"):
        store.create(_document("doc-2", 1))

    store.create(_document("doc-3", 1, owner_id="owner-2"))
    store.create(_document("doc-4", 1, kind="challan"))
    assert store.number_exists("owner-1", "invoice", 1)
    assert not store.number_exists("owner-1", "invoice", 2)


def test_highest_number(tmp_path: Path) -> None:
    store = DocumentStore(db_path=tmp_path / "billing.db")
    assert store.highest_number("owner-1", "invoice") == 0
    store.create(_document("doc-1", 1))
    store.create(_document("doc-2", 2))
    assert store.highest_number("owner-1", "invoice") == 2


def test_list_filters_by_party_date_and_status(tmp_path: Path) -> None:
    store = DocumentStore(db_path=tmp_path / "billing.db")
    store.create(_document("doc-2", 2, party_id="party-2", issue_date=date(2024, 5, 10)))
    store.create(_document("doc-1", 1, issue_date=date(2024, 4, 1)))
    store.create(_document("doc-3", 3, issue_date=date(2024, 6, 1), status="paid"))

    everything = store.list_documents("owner-1", "invoice")
    assert [d.sequence_number for d in everything] == [1, 2, 3]

    by_party = store.list_documents("owner-1", "invoice", party_id="party-1")
    assert [d.document_id for d in by_party] == ["doc-1", "doc-3"]

    in_range = store.list_documents(
        "owner-1", "invoice", start_date=date(2024, 5, 1), end_date=date(2024, 5, 31)
    )
    assert [d.document_id for d in in_range] == ["doc-2"]

    paid = store.list_documents("owner-1", "invoice", status="paid")
    assert [d.document_id for d in paid] == ["doc-3"]


def test_update_and_delete_unknown_document(tmp_path: Path) -> None:
    store = DocumentStore(db_path=tmp_path / "billing.db")
    with pytest.raises(DocumentNotFoundError):
        store.update(_document("missing", 1))
    with pytest.raises(DocumentNotFoundError):
        store.delete("missing")
    with pytest.raises(DocumentNotFoundError):
        store.get("missing")


def test_update_replaces_payload(tmp_path: Path) -> None:
    store = DocumentStore(db_path=tmp_path / "billing.db")
    store.create(_document("doc-1", 1))
    store.update(_document("doc-1", 1, status="paid"))
    assert store.get("doc-1").status == "paid"
    assert store.list_documents("owner-1", "invoice", status="paid")[0].document_id == "doc-1"
