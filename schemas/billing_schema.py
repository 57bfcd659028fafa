from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

GST_RATES: tuple[int, ...] = (0, 5, 12, 18, 28)
DOCUMENT_KINDS: tuple[str, ...] = ("invoice", "challan")

DocumentKind = Literal["invoice", "challan"]
DocumentStatus = Literal["pending", "paid"]
TaxRate = Literal[0, 5, 12, 18, 28]
PaymentMethod = Literal["cheque", "cash", "upi", "netbanking"]


class LineItem(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    hsn: str = Field(default="", max_length=8, pattern=r"^(\d{4,8})?$")
    quantity: Decimal = Field(gt=0, le=10000)
    price: Decimal = Field(gt=0, le=1_000_000)

    @field_validator("hsn", mode="before")
    @classmethod
    def _blank_hsn(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.price


class PartySnapshot(BaseModel):
    """Copy of the party details taken when a document is issued."""

    party_id: str = Field(min_length=1)
    company_name: str = Field(min_length=1)
    state: str | None = None
    gst_no: str | None = None
    mobile_no: str | None = None
    address: str | None = None


class TaxBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total: Decimal
    rounded_total: Decimal
    round_off: Decimal
    inter_state: bool = False


class PaymentDetails(BaseModel):
    """Payment recorded when a document is marked paid.

    Cheque needs a cheque number and bank, UPI an id and account name,
    netbanking the transfer type and bank. Cash carries no TDS. Fields that do
    not belong to the chosen method are dropped.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    method: PaymentMethod
    amount: Decimal = Field(gt=0)
    taxable_amount: Decimal = Field(gt=0)
    tds: Decimal | None = Field(default=None, ge=0, le=100)
    tds_amount: Decimal = Decimal("0")
    other_claim: Decimal = Field(default=Decimal("0"), ge=0)
    other_claim_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    broker_name: str = Field(default="", pattern=r"^[A-Za-z\s]{0,50}$")
    broker_phone: str = Field(default="", pattern=r"^[0-9]{0,10}$")
    brokerage_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    brokerage_amount: Decimal = Decimal("0")
    cheque_no: str | None = Field(default=None, pattern=r"^[A-Za-z0-9]{6,12}$")
    bank: str | None = Field(default=None, pattern=r"^[A-Za-z\s]{3,50}$")
    upi_id: str | None = Field(default=None, pattern=r"^[a-zA-Z0-9._-]{2,256}@[a-zA-Z]{2,64}$")
    upi_name: str | None = Field(default=None, pattern=r"^[A-Za-z\s]{3,50}$")
    rtgs_neft: Literal["RTGS", "NEFT"] | None = None
    paid_at: datetime | None = None

    @field_validator("cheque_no", "bank", "upi_id", "upi_name", "rtgs_neft", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _apply_method_rules(self) -> "PaymentDetails":
        required = _PAYMENT_REQUIRED_FIELDS[self.method]
        missing = [name for name in required if getattr(self, name) is None]
        if missing:
            raise ValueError(f"{self.method} payment requires: {', '.join(missing)}")

        kept = _PAYMENT_METHOD_FIELDS[self.method]
        for name in ("cheque_no", "bank", "upi_id", "upi_name", "rtgs_neft"):
            if name not in kept:
                setattr(self, name, None)

        if self.method == "cash":
            self.tds = Decimal("0")
        self.tds_amount = _percent_of(self.taxable_amount, self.tds)
        self.brokerage_amount = _percent_of(self.taxable_amount, self.brokerage_percentage)
        return self


_PAYMENT_REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "cheque": ("cheque_no", "bank", "tds"),
    "upi": ("upi_id", "upi_name", "tds"),
    "netbanking": ("rtgs_neft", "bank", "tds"),
    "cash": (),
}
_PAYMENT_METHOD_FIELDS: dict[str, tuple[str, ...]] = {
    "cheque": ("cheque_no", "bank"),
    "upi": ("upi_id", "upi_name", "bank"),
    "netbanking": ("rtgs_neft", "bank"),
    "cash": (),
}


def _percent_of(amount: Decimal, percent: Decimal | None) -> Decimal:
    return (amount * (percent or 0) / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class DocumentDraft(BaseModel):
    """Form values submitted for a new or edited document."""

    model_config = ConfigDict(str_strip_whitespace=True)

    issue_date: date
    party_id: str = Field(min_length=1)
    items: list[LineItem] = Field(min_length=1)
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    tax_rate: TaxRate = 0
    status: DocumentStatus = "pending"
    payment_method: PaymentMethod = "cheque"
    challan_no: str | None = Field(default=None, max_length=20, pattern=r"^[0-9-]{1,20}$")
    notes: str = Field(default="", max_length=500)

    @field_validator("discount_percent", mode="before")
    @classmethod
    def _parse_discount(cls, value: Any) -> Any:
        if value is None:
            return Decimal("0")
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return Decimal("0")
            try:
                return Decimal(text)
            except InvalidOperation as exc:
                raise ValueError("Discount must be a number between 0 and 100") from exc
        return value

    @field_validator("tax_rate", mode="before")
    @classmethod
    def _parse_tax_rate(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return value

    @field_validator("challan_no", mode="before")
    @classmethod
    def _blank_challan_no(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("issue_date")
    @classmethod
    def _not_in_future(cls, value: date) -> date:
        if value > date.today():
            raise ValueError("Date cannot be in the future")
        return value


class BillingDocument(BaseModel):
    document_id: str
    owner_id: str
    kind: DocumentKind
    sequence_number: int = Field(gt=0)
    issue_date: date
    party_id: str
    party: PartySnapshot
    items: list[LineItem] = Field(min_length=1)
    discount_percent: Decimal
    tax_rate: int
    breakdown: TaxBreakdown
    status: DocumentStatus = "pending"
    payment_method: PaymentMethod = "cheque"
    challan_no: str | None = None
    payment: PaymentDetails | None = None
    notes: str = ""
    created_at: datetime
    updated_at: datetime
