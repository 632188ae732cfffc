"""Lifecycle engine: status state machine and downstream draft derivation.

Everything here is pure. Derivations never touch the source record; they
return new draft records (``id=None``) pending user confirmation and a store
write.

    appointments  Scheduled -> Completed | Cancelled
    quotations    Draft | Sent -> Accepted | Rejected
    invoices      Pending -> Paid        (only by recording a receipt)
    receipts      no status
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Mapping

from bizflow.errors import InvalidTransition, ValidationFailure
from bizflow.models import (
    Appointment,
    AppointmentStatus,
    Invoice,
    InvoiceStatus,
    Quotation,
    QuotationStatus,
    Receipt,
    Record,
    today_iso,
)

logger = logging.getLogger(__name__)

TRANSITIONS: dict[str, dict[str, frozenset[str]]] = {
    "appointments": {
        AppointmentStatus.SCHEDULED.value: frozenset(
            {AppointmentStatus.COMPLETED.value, AppointmentStatus.CANCELLED.value}
        ),
    },
    "quotations": {
        QuotationStatus.DRAFT.value: frozenset(
            {QuotationStatus.ACCEPTED.value, QuotationStatus.REJECTED.value}
        ),
        QuotationStatus.SENT.value: frozenset(
            {QuotationStatus.ACCEPTED.value, QuotationStatus.REJECTED.value}
        ),
    },
    "invoices": {
        InvoiceStatus.PENDING.value: frozenset({InvoiceStatus.PAID.value}),
    },
    "receipts": {},
}

FALLBACK_RECEIPT_DESCRIPTION = "Service payment against invoice."


def _value(status) -> str:
    return getattr(status, "value", status)


def allowed_targets(collection: str, current) -> frozenset[str]:
    return TRANSITIONS.get(collection, {}).get(_value(current), frozenset())


def can_transition(collection: str, current, target) -> bool:
    return _value(target) in allowed_targets(collection, current)


def check_transition(collection: str, current, target) -> None:
    """Raise InvalidTransition unless current -> target is in the table."""
    if collection not in TRANSITIONS:
        raise InvalidTransition(f"Unknown collection: {collection!r}")
    if not TRANSITIONS[collection]:
        raise InvalidTransition(f"{collection} have no status")
    if not can_transition(collection, current, target):
        raise InvalidTransition(
            f"{collection}: cannot move from {_value(current)!r} to {_value(target)!r}"
        )


def transition(record: Record, target) -> Record:
    """Return a copy of ``record`` with its status moved to ``target``."""
    current = getattr(record, "status", None)
    check_transition(record.collection, current, target)
    return replace(record, status=_value(target))


def _require_id(record: Record) -> str:
    if not record.id:
        raise ValidationFailure(f"{record.collection} record must be saved before deriving from it")
    return record.id


def quotation_from_appointment(appointment: Appointment, today: date | None = None) -> Quotation:
    """Draft a quotation for a scheduled appointment."""
    if appointment.status != AppointmentStatus.SCHEDULED:
        raise InvalidTransition(
            f"Only Scheduled appointments can be quoted (got {appointment.status.value})"
        )
    return Quotation(
        client_name=appointment.client_name,
        company_name=appointment.company_name,
        address=appointment.address,
        contact=appointment.contact,
        service_type=appointment.title,
        items=(
            f"Proposal for {appointment.title} services, "
            f"following the meeting on {appointment.date}."
        ),
        date=today_iso(today),
        appointment_id=_require_id(appointment),
    )


def invoice_from_quotation(quotation: Quotation, today: date | None = None) -> Invoice:
    """Draft an invoice for an accepted quotation; total is copied exactly."""
    if quotation.status != QuotationStatus.ACCEPTED:
        raise InvalidTransition(
            f"Only Accepted quotations can be invoiced (got {quotation.status.value})"
        )
    return Invoice(
        client_name=quotation.client_name,
        company_name=quotation.company_name,
        address=quotation.address,
        contact=quotation.contact,
        items=quotation.items,
        total=quotation.total,
        date=today_iso(today),
        status=InvoiceStatus.PENDING,
        quote_id=_require_id(quotation),
    )


def receipt_description(invoice: Invoice, quotation: Quotation | None) -> str:
    if quotation is not None and quotation.service_type:
        ref = (quotation.id or "")[:4]
        return f"{quotation.service_type} services for the period outlined in Quotation {ref}..."
    return invoice.items or FALLBACK_RECEIPT_DESCRIPTION


@dataclass(frozen=True)
class PaymentIntent:
    """The paid invoice to write back and the receipt draft to confirm."""

    invoice: Invoice
    receipt: Receipt


def record_payment(
    invoice: Invoice | None,
    quotations: Mapping[str, Quotation] | None = None,
    today: date | None = None,
) -> PaymentIntent:
    """Mark a pending invoice Paid and draft its receipt, as one intent."""
    if invoice is None:
        raise InvalidTransition("Invoice not found")
    invoice_id = _require_id(invoice)
    if invoice.status != InvoiceStatus.PENDING:
        raise InvalidTransition(f"Invoice {invoice_id[:4]}... is already {invoice.status.value}")

    quotation = None
    if invoice.quote_id and quotations is not None:
        quotation = quotations.get(invoice.quote_id)
        if quotation is None:
            logger.debug("Quotation %s for invoice %s not found", invoice.quote_id, invoice_id)

    paid = transition(invoice, InvoiceStatus.PAID)
    receipt = Receipt(
        client_name=invoice.client_name,
        amount=invoice.total,
        date_paid=today_iso(today),
        description=receipt_description(invoice, quotation),
        company_name=invoice.company_name,
        address=invoice.address,
        contact=invoice.contact,
        invoice_id=invoice_id,
    )
    return PaymentIntent(invoice=paid, receipt=receipt)
