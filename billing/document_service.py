from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any, Callable
from uuid import uuid4

from billing.config import Settings
from billing.dead_letter import DeadLetterStore
from billing.document_store import DocumentStore
from billing.errors import PersistenceError, SequenceConflictError
from billing.logger import log_document_event
from billing.metrics import JsonlMetricsSink, MetricsCollector
from billing.retry_utils import RetryExhaustedError, RetryPolicy, retry_on, run_with_retry
from billing.sequence_allocator import SequenceAllocator
from billing.state_machine import transition_status
from billing.summary import build_amount_summary
from billing.tax_calculator import coerce_amount, compute_breakdown
from billing.validation import validate_breakdown, validate_draft_payload
from schemas.billing_schema import (
    DOCUMENT_KINDS,
    BillingDocument,
    DocumentDraft,
    PartySnapshot,
    PaymentDetails,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_party(party: PartySnapshot | Mapping[str, Any]) -> PartySnapshot:
    return PartySnapshot.model_validate(party)


def effective_tax_rate(kind: str, tax_rate: Any) -> Any:
    # Challans are delivery notes and never carry GST.
    return 0 if kind == "challan" else tax_rate


def assemble_document(
    *,
    document_id: str,
    owner_id: str,
    kind: str,
    sequence_number: int,
    draft: DocumentDraft,
    party: PartySnapshot,
    seller_state: str | None,
    created_at: datetime,
    updated_at: datetime,
    payment: PaymentDetails | None = None,
) -> BillingDocument:
    if party.party_id != draft.party_id:
        raise ValueError(f"Party {party.party_id} does not match draft party {draft.party_id}")
    if draft.status == "paid" and payment is None:
        raise ValueError("Payment details are required to mark a document paid")

    tax_rate = effective_tax_rate(kind, draft.tax_rate)
    breakdown = compute_breakdown(
        draft.items,
        draft.discount_percent,
        tax_rate,
        seller_state,
        party.state,
    )
    check = validate_breakdown(breakdown, tax_rate)
    if not check["is_valid"]:
        codes = ", ".join(v["code"] for v in check["violations"] if v["severity"] == "error")
        raise ValueError(f"Inconsistent tax breakdown: {codes}")

    return BillingDocument(
        document_id=document_id,
        owner_id=owner_id,
        kind=kind,
        sequence_number=sequence_number,
        issue_date=draft.issue_date,
        party_id=draft.party_id,
        party=party,
        items=draft.items,
        discount_percent=draft.discount_percent,
        tax_rate=tax_rate,
        breakdown=breakdown,
        status=draft.status,
        payment_method=draft.payment_method,
        challan_no=draft.challan_no,
        payment=payment,
        notes=draft.notes,
        created_at=created_at,
        updated_at=updated_at,
    )


class DocumentService:
    def __init__(
        self,
        store: DocumentStore,
        allocator: SequenceAllocator,
        *,
        dead_letter: DeadLetterStore | None = None,
        metrics: MetricsCollector | None = None,
        metrics_sink: JsonlMetricsSink | None = None,
        confirm_policy: RetryPolicy | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self._store = store
        self._allocator = allocator
        self._dead_letter = dead_letter or DeadLetterStore()
        self._metrics = metrics or MetricsCollector()
        self._metrics_sink = metrics_sink
        self._confirm_policy = confirm_policy or RetryPolicy()
        self._sleep = sleep_fn
        self._clock = clock
        self._id_factory = id_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentService":
        return cls(
            store=DocumentStore(db_path=settings.db_path),
            allocator=SequenceAllocator(db_path=settings.db_path),
            dead_letter=DeadLetterStore(file_path=settings.dead_letter_path),
            metrics_sink=JsonlMetricsSink(path=settings.metrics_path),
            confirm_policy=RetryPolicy(max_attempts=settings.confirm_max_attempts),
        )

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    def _count(self, name: str, stage: str) -> None:
        self._metrics.increment(name)
        if self._metrics_sink is not None:
            self._metrics_sink.emit({"metric": name, "value": 1, "stage": stage})

    def preview(
        self,
        payload: Mapping[str, Any],
        seller_state: str | None,
        buyer_state: str | None = None,
        *,
        kind: str = "invoice",
    ) -> dict[str, Any]:
        """Recompute totals for an unsaved form. Never raises on bad numbers."""
        tax_rate = effective_tax_rate(kind, payload.get("tax_rate"))
        breakdown = compute_breakdown(
            payload.get("items") or [],
            payload.get("discount_percent"),
            tax_rate,
            seller_state,
            buyer_state,
        )
        return {"breakdown": breakdown, "summary": build_amount_summary(breakdown, coerce_amount(tax_rate))}

    def create_document(
        self,
        owner_id: str,
        kind: str,
        payload: Mapping[str, Any],
        party: PartySnapshot | Mapping[str, Any],
        seller_state: str | None,
    ) -> BillingDocument:
        if kind not in DOCUMENT_KINDS:
            raise ValueError(f"Unknown document kind: {kind}")
        started = time.monotonic()
        draft = validate_draft_payload(dict(payload))
        party_snapshot = _as_party(party)

        sequence_number = self._allocator.allocate_next(owner_id, series=kind)
        if self._store.number_exists(owner_id, kind, sequence_number):
            self._count("sequence_conflicts_total", "create")
            log_document_event(
                logger,
                logging.WARNING,
                "Allocated number is already taken; counter is stale",
                owner_id=owner_id,
                kind=kind,
                sequence_number=sequence_number,
                stage="allocate",
                outcome="conflict",
            )
            raise SequenceConflictError(f"{kind.capitalize()} number {sequence_number} already exists")

        now = self._clock()
        document = assemble_document(
            document_id=self._id_factory(),
            owner_id=owner_id,
            kind=kind,
            sequence_number=sequence_number,
            draft=draft,
            party=party_snapshot,
            seller_state=seller_state,
            created_at=now,
            updated_at=now,
        )

        try:
            self._store.create(document)
        except SequenceConflictError:
            self._count("sequence_conflicts_total", "create")
            raise
        except PersistenceError:
            self._count("persistence_failures_total", "create")
            log_document_event(
                logger,
                logging.ERROR,
                "Document write failed; counter left unchanged",
                owner_id=owner_id,
                document_id=document.document_id,
                kind=kind,
                sequence_number=sequence_number,
                stage="write",
                outcome="failed",
            )
            raise

        self._confirm(document)

        latency_ms = int((time.monotonic() - started) * 1000)
        self._metrics.observe_latency(latency_ms)
        self._count("documents_created_total", "create")
        log_document_event(
            logger,
            logging.INFO,
            "Document issued",
            owner_id=owner_id,
            document_id=document.document_id,
            kind=kind,
            sequence_number=sequence_number,
            stage="confirm",
            latency_ms=latency_ms,
            outcome="success",
        )
        return document

    def _confirm(self, document: BillingDocument) -> None:
        try:
            run_with_retry(
                operation=lambda: self._allocator.confirm(
                    document.owner_id, document.sequence_number, series=document.kind
                ),
                should_retry=retry_on(PersistenceError),
                policy=self._confirm_policy,
                sleep_fn=self._sleep,
            )
        except SequenceConflictError:
            # Another confirm won this number; withdraw the document so no duplicate stays issued.
            self._store.delete(document.document_id)
            self._count("sequence_conflicts_total", "confirm")
            log_document_event(
                logger,
                logging.WARNING,
                "Counter moved during create; document withdrawn",
                owner_id=document.owner_id,
                document_id=document.document_id,
                kind=document.kind,
                sequence_number=document.sequence_number,
                stage="confirm",
                outcome="conflict",
            )
            raise
        except RetryExhaustedError as exc:
            self._count("confirms_pending_total", "confirm")
            self._dead_letter.record_pending_confirm(
                owner_id=document.owner_id,
                series=document.kind,
                sequence_number=document.sequence_number,
                document_id=document.document_id,
                error_message=str(exc.__cause__ or exc),
            )
            log_document_event(
                logger,
                logging.ERROR,
                "Document saved but counter confirm failed; queued for replay",
                owner_id=document.owner_id,
                document_id=document.document_id,
                kind=document.kind,
                sequence_number=document.sequence_number,
                stage="confirm",
                outcome="confirm_pending",
            )
            raise PersistenceError(
                f"{document.kind.capitalize()} {document.sequence_number} was saved but its counter "
                "could not be updated; run replay-confirms"
            ) from exc

    def edit_document(
        self,
        document_id: str,
        payload: Mapping[str, Any],
        party: PartySnapshot | Mapping[str, Any],
        seller_state: str | None,
    ) -> BillingDocument:
        existing = self._store.get(document_id)
        draft = validate_draft_payload(dict(payload))
        updated = assemble_document(
            document_id=existing.document_id,
            owner_id=existing.owner_id,
            kind=existing.kind,
            sequence_number=existing.sequence_number,
            draft=draft,
            party=_as_party(party),
            seller_state=seller_state,
            created_at=existing.created_at,
            updated_at=self._clock(),
            payment=existing.payment if draft.status == "paid" else None,
        )
        self._store.update(updated)
        self._count("documents_updated_total", "edit")
        log_document_event(
            logger,
            logging.INFO,
            "Document updated",
            owner_id=existing.owner_id,
            document_id=document_id,
            kind=existing.kind,
            sequence_number=existing.sequence_number,
            stage="edit",
            outcome="success",
        )
        return updated

    def delete_document(self, document_id: str) -> None:
        existing = self._store.get(document_id)
        self._store.delete(document_id)
        self._count("documents_deleted_total", "delete")
        log_document_event(
            logger,
            logging.INFO,
            "Document deleted; number is not reused",
            owner_id=existing.owner_id,
            document_id=document_id,
            kind=existing.kind,
            sequence_number=existing.sequence_number,
            stage="delete",
            outcome="success",
        )

    def set_status(
        self,
        document_id: str,
        status: str,
        payment: PaymentDetails | Mapping[str, Any] | None = None,
    ) -> BillingDocument:
        """Move a document between pending and paid.

        Marking a document paid records the payment; moving it back to pending
        clears it.
        """
        existing = self._store.get(document_id)
        new_status = transition_status(existing.status, status)
        now = self._clock()
        if new_status == "paid":
            if payment is None:
                raise ValueError("Payment details are required to mark a document paid")
            details = PaymentDetails.model_validate(payment)
            if details.paid_at is None:
                details = details.model_copy(update={"paid_at": now})
            update: dict[str, Any] = {"payment": details, "payment_method": details.method}
        else:
            if payment is not None:
                raise ValueError("Payment details only apply when marking a document paid")
            update = {"payment": None}

        updated = existing.model_copy(update={**update, "status": new_status, "updated_at": now})
        self._store.update(updated)
        self._count("documents_updated_total", "status")
        log_document_event(
            logger,
            logging.INFO,
            f"Document marked {new_status}",
            owner_id=existing.owner_id,
            document_id=document_id,
            kind=existing.kind,
            sequence_number=existing.sequence_number,
            stage="status",
            outcome="success",
        )
        return updated

    def get_document(self, document_id: str) -> BillingDocument:
        return self._store.get(document_id)

    def list_documents(
        self,
        owner_id: str,
        kind: str,
        *,
        party_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        status: str | None = None,
    ) -> list[BillingDocument]:
        return self._store.list_documents(
            owner_id,
            kind,
            party_id=party_id,
            start_date=start_date,
            end_date=end_date,
            status=status,
        )

    def convert_challan_to_invoice(
        self,
        challan_id: str,
        tax_rate: int,
        seller_state: str | None,
    ) -> BillingDocument:
        challan = self._store.get(challan_id)
        if challan.kind != "challan":
            raise ValueError(f"Document {challan_id} is not a challan")
        payload = {
            "issue_date": challan.issue_date,
            "party_id": challan.party_id,
            "items": [item.model_dump() for item in challan.items],
            "discount_percent": challan.discount_percent,
            "tax_rate": tax_rate,
            "payment_method": challan.payment_method,
            "challan_no": str(challan.sequence_number),
            "notes": challan.notes,
        }
        return self.create_document(challan.owner_id, "invoice", payload, challan.party, seller_state)

    def reconcile_counter(self, owner_id: str, kind: str) -> int:
        """Bring the counter up to the highest number already issued."""
        highest = self._store.highest_number(owner_id, kind)
        return self._allocator.reconcile(owner_id, highest, series=kind)
