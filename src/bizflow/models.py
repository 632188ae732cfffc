"""Entity records for the four workflow collections.

Records are plain dataclasses with snake_case attributes. The persisted
document shape uses camelCase keys (``clientName``, ``quoteId``) and never
carries the ``id``; identifiers live beside the document, assigned by the
store.

Money is held as ``Decimal`` and persisted as a decimal string so the stored
value stays exact. Display rounding goes through ``format_money``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Mapping

from bizflow.errors import ValidationFailure

# UI-only keys that must never reach persisted storage
TRANSIENT_FIELDS = ("isConfirmed",)

DEFAULT_SERVICE = "Content Protection"

APPOINTMENT_TITLES = ("Content Protection", "Brand Protection", "Media Management", "General Inquiry")
SERVICE_TYPES = ("Content Protection", "Brand Protection", "Media Management", "General Service")
PERIODS = ("3 Months", "6 Months", "12 Months", "24 Months", "One-time")
PAYMENT_TERMS = ("Net 30", "Net 60", "50% Upfront", "100% Upfront")


class AppointmentStatus(str, Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class MeetingType(str, Enum):
    IN_PERSON = "In-Person"
    ONLINE = "Online"


class QuotationStatus(str, Enum):
    DRAFT = "Draft"
    SENT = "Sent"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


class InvoiceStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"


def parse_money(value: Any, name: str = "amount") -> Decimal:
    """Parse a non-negative currency amount without losing precision."""
    if isinstance(value, bool):
        raise ValidationFailure(f"{name} must be a number, got {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip() or "0")
    except InvalidOperation:
        raise ValidationFailure(f"{name} must be a number, got {value!r}") from None
    if not amount.is_finite():
        raise ValidationFailure(f"{name} must be finite, got {value!r}")
    if amount < 0:
        raise ValidationFailure(f"{name} must not be negative, got {amount}")
    return amount


def format_money(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def today_iso(today: date | None = None) -> str:
    return (today or date.today()).isoformat()


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", key).lower()


@dataclass
class Record:
    """Common persistence behavior for all entity kinds."""

    collection: ClassVar[str] = ""
    enum_fields: ClassVar[dict[str, type[Enum]]] = {}
    money_fields: ClassVar[tuple[str, ...]] = ()
    link_field: ClassVar[str | None] = None

    def __post_init__(self) -> None:
        for name, enum_type in self.enum_fields.items():
            value = getattr(self, name)
            if not isinstance(value, enum_type):
                try:
                    setattr(self, name, enum_type(value))
                except ValueError:
                    allowed = ", ".join(member.value for member in enum_type)
                    raise ValidationFailure(
                        f"Invalid {_camel(name)} {value!r} for {self.collection} "
                        f"(allowed: {allowed})"
                    ) from None
        for name in self.money_fields:
            setattr(self, name, parse_money(getattr(self, name), _camel(name)))
        if self.link_field and not getattr(self, self.link_field):
            setattr(self, self.link_field, None)

    @classmethod
    def document_keys(cls) -> list[str]:
        return [_camel(f.name) for f in fields(cls) if f.name != "id"]

    def to_dict(self) -> dict[str, Any]:
        """Return the persisted document (no id, no transient UI state)."""
        doc: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "id":
                continue
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, Decimal):
                value = str(value)
            doc[_camel(f.name)] = value
        return doc

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], id: str | None = None):
        """Build a record from a stored document. Unknown keys are ignored."""
        known = {f.name for f in fields(cls)} - {"id"}
        kwargs = {}
        for key, value in data.items():
            name = _snake(key)
            if name in known:
                kwargs[name] = value
        return cls(id=id, **kwargs)

    def apply(self, patch: Mapping[str, Any]):
        """Return a copy with a camelCase partial update applied."""
        patch = strip_transient(patch)
        validate_patch(type(self), patch)
        return replace(self, **{_snake(key): value for key, value in patch.items()})


def strip_transient(data: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key not in TRANSIENT_FIELDS}


def validate_patch(cls: type[Record], patch: Mapping[str, Any], allow_status: bool = False) -> None:
    """Reject partial updates that touch back-references or unknown keys.

    Status is rejected too unless ``allow_status`` is set; status changes
    are expected to come from a lifecycle transition.
    """
    allowed = set(cls.document_keys())
    for key in patch:
        if key in TRANSIENT_FIELDS:
            continue
        if key not in allowed:
            raise ValidationFailure(f"Unknown field {key!r} for {cls.collection}")
        if key == "status" and not allow_status:
            raise ValidationFailure("Status changes must go through a lifecycle transition")
        if cls.link_field and key == _camel(cls.link_field):
            raise ValidationFailure(f"{key} is set at creation and cannot be reassigned")


def normalize_patch(
    cls: type[Record], patch: Mapping[str, Any], allow_status: bool = False
) -> dict[str, Any]:
    """Validate a partial update and return it in persisted form."""
    patch = strip_transient(patch)
    validate_patch(cls, patch, allow_status=allow_status)
    candidate = cls(**{_snake(key): value for key, value in patch.items()})
    doc = candidate.to_dict()
    return {key: doc[key] for key in patch}


@dataclass
class Appointment(Record):
    collection: ClassVar[str] = "appointments"
    enum_fields: ClassVar[dict[str, type[Enum]]] = {
        "status": AppointmentStatus,
        "meeting_type": MeetingType,
    }

    client_name: str = ""
    company_name: str = ""
    address: str = ""
    contact: str = ""
    title: str = DEFAULT_SERVICE
    date: str = ""
    time: str = ""
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    meeting_type: MeetingType = MeetingType.IN_PERSON
    id: str | None = None


@dataclass
class Quotation(Record):
    collection: ClassVar[str] = "quotations"
    enum_fields: ClassVar[dict[str, type[Enum]]] = {"status": QuotationStatus}
    money_fields: ClassVar[tuple[str, ...]] = ("total",)
    link_field: ClassVar[str | None] = "appointment_id"

    client_name: str = ""
    company_name: str = ""
    address: str = ""
    contact: str = ""
    items: str = ""
    total: Decimal = Decimal("0")
    date: str = ""
    status: QuotationStatus = QuotationStatus.DRAFT
    service_type: str = DEFAULT_SERVICE
    period: str = "12 Months"
    payment_term: str = "Net 30"
    appointment_id: str | None = None
    id: str | None = None


@dataclass
class Invoice(Record):
    collection: ClassVar[str] = "invoices"
    enum_fields: ClassVar[dict[str, type[Enum]]] = {"status": InvoiceStatus}
    money_fields: ClassVar[tuple[str, ...]] = ("total",)
    link_field: ClassVar[str | None] = "quote_id"

    client_name: str = ""
    company_name: str = ""
    address: str = ""
    contact: str = ""
    items: str = ""
    total: Decimal = Decimal("0")
    date: str = ""
    status: InvoiceStatus = InvoiceStatus.PENDING
    quote_id: str | None = None
    id: str | None = None


@dataclass
class Receipt(Record):
    collection: ClassVar[str] = "receipts"
    money_fields: ClassVar[tuple[str, ...]] = ("amount",)
    link_field: ClassVar[str | None] = "invoice_id"

    client_name: str = ""
    amount: Decimal = Decimal("0")
    date_paid: str = ""
    description: str = ""
    company_name: str = ""
    address: str = ""
    contact: str = ""
    invoice_id: str | None = None
    id: str | None = None


RECORD_TYPES: dict[str, type[Record]] = {
    cls.collection: cls for cls in (Appointment, Quotation, Invoice, Receipt)
}
COLLECTIONS = tuple(RECORD_TYPES)


def record_type(collection: str) -> type[Record]:
    try:
        return RECORD_TYPES[collection]
    except KeyError:
        raise ValidationFailure(f"Unknown collection: {collection!r}") from None


def new_appointment(today: date | None = None) -> Appointment:
    return Appointment(date=today_iso(today))


def new_quotation(today: date | None = None) -> Quotation:
    return Quotation(date=today_iso(today))


def new_invoice(today: date | None = None) -> Invoice:
    return Invoice(date=today_iso(today))


def new_receipt(today: date | None = None) -> Receipt:
    return Receipt(date_paid=today_iso(today))
