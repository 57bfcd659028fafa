from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from billing.dead_letter import CONFIRM_PENDING, DeadLetterStore
from billing.document_service import DocumentService
from billing.errors import DocumentNotFoundError, PersistenceError, SequenceConflictError
from billing.number_to_words import to_words
from billing.state_machine import InvalidTransitionError
from billing.summary import build_amount_summary, summarize_documents
from schemas.billing_schema import DocumentKind, PartySnapshot, TaxRate


class PreviewRequest(BaseModel):
    items: list[dict[str, Any]] = Field(default_factory=list)
    discount_percent: Any = None
    tax_rate: Any = None
    seller_state: str | None = None
    buyer_state: str | None = None
    kind: DocumentKind = "invoice"


class DocumentRequest(BaseModel):
    draft: dict[str, Any]
    party: PartySnapshot
    seller_state: str | None = None


class StatusRequest(BaseModel):
    status: str
    payment: dict[str, Any] | None = None


class ConvertRequest(BaseModel):
    tax_rate: TaxRate | None = None
    seller_state: str | None = None


def _error(status_code: int, code: str, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"code": code, "message": message, **extra})


def create_billing_app(
    service: DocumentService,
    *,
    seller_state: str | None = None,
    default_tax_rate: int = 0,
    dead_letter_path: str | Path = "logs/dead_letter.jsonl",
) -> FastAPI:
    app = FastAPI(title="GST Billing API", version="0.1.0")
    dead_letter = DeadLetterStore(file_path=dead_letter_path)

    def _seller(requested: str | None) -> str | None:
        return requested if requested is not None else seller_state

    @app.exception_handler(ValidationError)
    def _on_validation_error(_: Request, exc: ValidationError) -> JSONResponse:
        errors = [
            {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
            for e in exc.errors(include_url=False)
        ]
        return _error(422, "validation_failed", "Document failed validation", errors=errors)

    @app.exception_handler(SequenceConflictError)
    def _on_conflict(_: Request, exc: SequenceConflictError) -> JSONResponse:
        return _error(409, "sequence_conflict", str(exc))

    @app.exception_handler(InvalidTransitionError)
    def _on_transition(_: Request, exc: InvalidTransitionError) -> JSONResponse:
        return _error(409, "invalid_transition", str(exc))

    @app.exception_handler(DocumentNotFoundError)
    def _on_not_found(_: Request, exc: DocumentNotFoundError) -> JSONResponse:
        return _error(404, "not_found", str(exc))

    @app.exception_handler(ValueError)
    def _on_value_error(_: Request, exc: ValueError) -> JSONResponse:
        return _error(422, "invalid_request", str(exc))

    @app.exception_handler(PersistenceError)
    def _on_persistence(_: Request, exc: PersistenceError) -> JSONResponse:
        return _error(503, "persistence_failed", str(exc))

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/preview")
    def preview(body: PreviewRequest) -> dict[str, Any]:
        payload = body.model_dump(include={"items", "discount_percent", "tax_rate"})
        if payload["tax_rate"] is None:
            payload["tax_rate"] = default_tax_rate
        result = service.preview(
            payload,
            _seller(body.seller_state),
            body.buyer_state,
            kind=body.kind,
        )
        return {
            "breakdown": result["breakdown"].model_dump(mode="json"),
            "summary": result["summary"],
        }

    @app.get("/words")
    def words(amount: str) -> Any:
        try:
            return {"amount": amount, "words": to_words(amount)}
        except ValueError as exc:
            return _error(422, "invalid_amount", str(exc))

    @app.post("/owners/{owner_id}/{kind}", status_code=201)
    def create_document(owner_id: str, kind: DocumentKind, body: DocumentRequest) -> dict[str, Any]:
        document = service.create_document(
            owner_id,
            kind,
            body.draft,
            body.party,
            _seller(body.seller_state),
        )
        return document.model_dump(mode="json")

    @app.get("/owners/{owner_id}/{kind}")
    def list_documents(
        owner_id: str,
        kind: DocumentKind,
        party_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        status: str | None = None,
    ) -> dict[str, Any]:
        documents = service.list_documents(
            owner_id,
            kind,
            party_id=party_id,
            start_date=start_date,
            end_date=end_date,
            status=status,
        )
        return {
            "count": len(documents),
            "items": [d.model_dump(mode="json") for d in documents],
            "summary": summarize_documents(documents),
        }

    @app.get("/documents/{document_id}")
    def get_document(document_id: str) -> dict[str, Any]:
        return service.get_document(document_id).model_dump(mode="json")

    @app.get("/documents/{document_id}/summary")
    def document_summary(document_id: str) -> dict[str, Any]:
        document = service.get_document(document_id)
        return build_amount_summary(document.breakdown, document.tax_rate)

    @app.put("/documents/{document_id}")
    def edit_document(document_id: str, body: DocumentRequest) -> dict[str, Any]:
        document = service.edit_document(
            document_id,
            body.draft,
            body.party,
            _seller(body.seller_state),
        )
        return document.model_dump(mode="json")

    @app.delete("/documents/{document_id}")
    def delete_document(document_id: str) -> dict[str, str]:
        service.delete_document(document_id)
        return {"status": "deleted", "document_id": document_id}

    @app.post("/documents/{document_id}/status")
    def set_status(document_id: str, body: StatusRequest) -> dict[str, Any]:
        return service.set_status(document_id, body.status, body.payment).model_dump(mode="json")

    @app.post("/documents/{document_id}/convert", status_code=201)
    def convert(document_id: str, body: ConvertRequest) -> dict[str, Any]:
        invoice = service.convert_challan_to_invoice(
            document_id,
            body.tax_rate if body.tax_rate is not None else default_tax_rate,
            _seller(body.seller_state),
        )
        return invoice.model_dump(mode="json")

    @app.get("/stats")
    def stats() -> dict[str, Any]:
        counters = service.metrics.snapshot()
        counters["dead_letter_pending_total"] = len(dead_letter.list_failures(status=CONFIRM_PENDING))
        return counters

    @app.get("/failures")
    def failures(limit: int = 50) -> dict[str, Any]:
        items = dead_letter.list_failures()
        return {"count": len(items), "items": items[-limit:]}

    return app
