from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient

from billing.api import create_billing_app
from billing.dead_letter import DeadLetterStore
from billing.document_service import DocumentService
from billing.document_store import DocumentStore
from billing.retry_utils import RetryPolicy
from billing.sequence_allocator import SequenceAllocator


def _draft(**overrides: Any) -> dict[str, Any]:
    draft: dict[str, Any] = {
        "issue_date": "2024-04-01",
        "party_id": "party-1",
        "items": [
            {"name": "Cotton Fabric", "hsn": "5208", "quantity": "2", "price": "500"},
            {"name": "Thread Spool", "quantity": "1", "price": "250"},
        ],
        "discount_percent": "10",
        "tax_rate": 18,
    }
    draft.update(overrides)
    return draft


def _body(state: str = "Gujarat", **overrides: Any) -> dict[str, Any]:
    return {
        "draft": _draft(**overrides),
        "party": {"party_id": "party-1", "company_name": "Shree Traders", "state": state},
    }


_UPI_PAYMENT = {
    "method": "upi",
    "amount": "1328",
    "taxable_amount": "1125",
    "tds": "0",
    "upi_id": "shree.traders@okaxis",
    "upi_name": "Shree Traders",
}


def _client(tmp_path: Path) -> tuple[TestClient, DocumentStore]:
    db = tmp_path / "billing.db"
    store = DocumentStore(db_path=db)
    service = DocumentService(
        store=store,
        allocator=SequenceAllocator(db_path=db),
        dead_letter=DeadLetterStore(file_path=tmp_path / "dead_letter.jsonl"),
        confirm_policy=RetryPolicy(max_attempts=1),
        sleep_fn=lambda _: None,
    )
    app = create_billing_app(
        service,
        seller_state="Gujarat",
        default_tax_rate=18,
        dead_letter_path=tmp_path / "dead_letter.jsonl",
    )
    return TestClient(app), store


def test_health(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_list_and_summary(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)

    created = client.post("/owners/owner-1/invoice", json=_body())
    assert created.status_code == 201
    document = created.json()
    assert document["sequence_number"] == 1
    assert document["breakdown"]["cgst"] == "101.25"
    assert document["breakdown"]["rounded_total"] == "1328.00"

    second = client.post("/owners/owner-1/invoice", json=_body(state="Kerala"))
    assert second.json()["sequence_number"] == 2
    assert second.json()["breakdown"]["igst"] == "202.50"

    listing = client.get("/owners/owner-1/invoice").json()
    assert listing["count"] == 2
    assert [item["sequence_number"] for item in listing["items"]] == [1, 2]
    assert listing["summary"]["grand_total"] == "2656.00"

    summary = client.get(f"/documents/{document['document_id']}/summary").json()
    assert summary["cgst_rate"] == "9"
    assert summary["igst_rate"] is None
    assert summary["round_off"] == "0.50"
    assert summary["round_off_direction"] == "add"
    assert summary["amount_in_words"] == "One Thousand Three Hundred and Twenty Eight Rupees"


def test_invalid_draft_returns_validation_errors(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    response = client.post("/owners/owner-1/invoice", json=_body(tax_rate=7))
    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == "validation_failed"
    assert any(error["loc"] == ["tax_rate"] for error in payload["errors"])


def test_stale_counter_returns_conflict(tmp_path: Path) -> None:
    client, store = _client(tmp_path)
    first = client.post("/owners/owner-1/invoice", json=_body()).json()
    existing = store.get(first["document_id"])
    store.create(existing.model_copy(update={"document_id": "doc-x", "sequence_number": 2}))

    response = client.post("/owners/owner-1/invoice", json=_body())
    assert response.status_code == 409
    assert response.json()["code"] == "sequence_conflict"
    assert client.get("/stats").json()["conflict_total"] == 1


def test_status_transition_and_not_found(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    document_id = client.post("/owners/owner-1/invoice", json=_body()).json()["document_id"]

    paid = client.post(f"/documents/{document_id}/status", json={"status": "paid", "payment": _UPI_PAYMENT})
    assert paid.status_code == 200
    assert paid.json()["status"] == "paid"

    again = client.post(f"/documents/{document_id}/status", json={"status": "paid", "payment": _UPI_PAYMENT})
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_transition"

    missing = client.get("/documents/does-not-exist")
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"


def test_edit_and_delete(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    document_id = client.post("/owners/owner-1/invoice", json=_body()).json()["document_id"]

    edited = client.put(f"/documents/{document_id}", json=_body(discount_percent="0"))
    assert edited.status_code == 200
    assert edited.json()["breakdown"]["taxable_amount"] == "1250.00"
    assert edited.json()["sequence_number"] == 1

    deleted = client.delete(f"/documents/{document_id}")
    assert deleted.json() == {"status": "deleted", "document_id": document_id}
    assert client.get(f"/documents/{document_id}").status_code == 404

    next_number = client.post("/owners/owner-1/invoice", json=_body()).json()["sequence_number"]
    assert next_number == 2


def test_challan_conversion(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    challan = client.post("/owners/owner-1/challan", json=_body()).json()
    assert challan["tax_rate"] == 0

    converted = client.post(f"/documents/{challan['document_id']}/convert", json={})
    assert converted.status_code == 201
    invoice = converted.json()
    assert invoice["kind"] == "invoice"
    assert invoice["tax_rate"] == 18
    assert invoice["challan_no"] == "1"

    again = client.post(f"/documents/{invoice['document_id']}/convert", json={})
    assert again.status_code == 422
    assert again.json()["code"] == "invalid_request"


def test_preview_and_words(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    preview = client.post(
        "/preview",
        json={
            "items": [{"quantity": "2", "price": "500"}, {"quantity": "1", "price": "250"}],
            "discount_percent": "10",
            "buyer_state": "Kerala",
        },
    )
    assert preview.status_code == 200
    summary = preview.json()["summary"]
    assert summary["igst_rate"] == "18"
    assert summary["igst"] == "202.50"
    assert summary["rounded_total"] == "1328.00"

    words = client.get("/words", params={"amount": "100"})
    assert words.json()["words"] == "One Hundred Rupees"

    bad = client.get("/words", params={"amount": "abc"})
    assert bad.status_code == 422
    assert bad.json()["code"] == "invalid_amount"


def test_failures_endpoint_lists_pending_confirms(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    DeadLetterStore(file_path=tmp_path / "dead_letter.jsonl").record_pending_confirm(
        owner_id="owner-1",
        series="invoice",
        sequence_number=3,
        document_id="doc-3",
        error_message="database is locked",
    )

    failures = client.get("/failures").json()
    assert failures["count"] == 1
    assert failures["items"][0]["document_id"] == "doc-3"
    assert client.get("/stats").json()["dead_letter_pending_total"] == 1


def test_mark_paid_requires_valid_payment(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    document_id = client.post("/owners/owner-1/invoice", json=_body()).json()["document_id"]

    missing = client.post(f"/documents/{document_id}/status", json={"status": "paid"})
    assert missing.status_code == 422
    assert missing.json()["code"] == "invalid_request"

    bad = client.post(
        f"/documents/{document_id}/status",
        json={"status": "paid", "payment": {**_UPI_PAYMENT, "upi_id": "not-an-id"}},
    )
    assert bad.status_code == 422
    assert bad.json()["code"] == "validation_failed"

    paid = client.post(f"/documents/{document_id}/status", json={"status": "paid", "payment": _UPI_PAYMENT})
    payment = paid.json()["payment"]
    assert paid.json()["payment_method"] == "upi"
    assert payment["upi_name"] == "Shree Traders"
    assert payment["cheque_no"] is None
    assert payment["paid_at"] is not None


def test_preview_with_oversized_values_returns_zero_totals(tmp_path: Path) -> None:
    client, _ = _client(tmp_path)
    response = client.post(
        "/preview",
        json={"items": [{"quantity": "1e30", "price": "10"}], "discount_percent": "1e30", "tax_rate": 18},
    )
    assert response.status_code == 200
    summary = response.json()["summary"]
    assert summary["rounded_total"] == "0.00"
    assert summary["amount_in_words"] == "Zero Rupees"
