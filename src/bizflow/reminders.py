"""Due follow-ups derived from the current appointment and invoice snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Literal

from bizflow.models import (
    Appointment,
    AppointmentStatus,
    Invoice,
    InvoiceStatus,
    format_money,
)

Due = Literal["today", "tomorrow", "pending"]

ALL_CLEAR = "All clear! No immediate appointments or pending invoice follow-ups."


@dataclass(frozen=True)
class Reminder:
    kind: Literal["Appointment", "Invoice Follow Up"]
    client: str
    details: str
    due: Due
    source_id: str | None = None


def _parse_date(value: str) -> date | None:
    try:
        return date.fromisoformat(value[:10])
    except (TypeError, ValueError):
        return None


def due_reminders(
    appointments: Iterable[Appointment],
    invoices: Iterable[Invoice],
    today: date,
) -> list[Reminder]:
    """Appointments due today/tomorrow first, then every pending invoice.

    Both groups keep snapshot iteration order.
    """
    tomorrow = today + timedelta(days=1)
    reminders: list[Reminder] = []

    for appointment in appointments:
        if appointment.status != AppointmentStatus.SCHEDULED:
            continue
        when = _parse_date(appointment.date)
        if when == today:
            label, due = "Today", "today"
        elif when == tomorrow:
            label, due = "Tomorrow", "tomorrow"
        else:
            continue
        reminders.append(
            Reminder(
                kind="Appointment",
                client=appointment.client_name,
                details=f"{label} at {appointment.time} for {appointment.title}",
                due=due,
                source_id=appointment.id,
            )
        )

    for invoice in invoices:
        if invoice.status != InvoiceStatus.PENDING:
            continue
        reminders.append(
            Reminder(
                kind="Invoice Follow Up",
                client=invoice.client_name,
                details=f"Pending payment of ${format_money(invoice.total)} (Issued: {invoice.date})",
                due="pending",
                source_id=invoice.id,
            )
        )

    return reminders


def format_reminders(reminders: list[Reminder]) -> str:
    if not reminders:
        return ALL_CLEAR
    lines = [f"Immediate Follow-Ups ({len(reminders)})"]
    for r in reminders:
        lines.append(f"- {r.kind}: {r.client}: {r.details}")
    return "\n".join(lines)
