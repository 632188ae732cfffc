"""Tests for due follow-up derivation."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from bizflow.models import Appointment, AppointmentStatus, Invoice, InvoiceStatus
from bizflow.reminders import ALL_CLEAR, due_reminders, format_reminders

TODAY = date(2026, 10, 19)


def _appointment(offset: int, status=AppointmentStatus.SCHEDULED, **kw) -> Appointment:
    return Appointment(
        client_name=kw.pop("client_name", "Ann"),
        title="Media Management",
        date=(TODAY + timedelta(days=offset)).isoformat(),
        time="09:30",
        status=status,
        **kw,
    )


class TestAppointmentReminders:
    def test_due_today(self):
        reminders = due_reminders([_appointment(0)], [], TODAY)
        assert len(reminders) == 1
        assert reminders[0].due == "today"
        assert reminders[0].details == "Today at 09:30 for Media Management"

    def test_due_tomorrow(self):
        reminders = due_reminders([_appointment(1)], [], TODAY)
        assert [r.due for r in reminders] == ["tomorrow"]
        assert reminders[0].details.startswith("Tomorrow at 09:30")

    @pytest.mark.parametrize("offset", [2, -1, 30])
    def test_other_offsets_ignored(self, offset):
        assert due_reminders([_appointment(offset)], [], TODAY) == []

    @pytest.mark.parametrize("status", [AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED])
    def test_only_scheduled(self, status):
        assert due_reminders([_appointment(0, status), _appointment(1, status)], [], TODAY) == []

    def test_blank_or_bad_date_ignored(self):
        blank = Appointment(date="")
        bad = Appointment(date="next tuesday")
        assert due_reminders([blank, bad], [], TODAY) == []


class TestInvoiceReminders:
    def test_every_pending_invoice_regardless_of_age(self):
        old = Invoice(client_name="Old Co", total=Decimal("10"), date="2020-01-01")
        new = Invoice(client_name="New Co", total=Decimal("2.5"), date=TODAY.isoformat())
        paid = Invoice(client_name="Paid Co", status=InvoiceStatus.PAID)
        reminders = due_reminders([], [old, new, paid], TODAY)
        assert [r.client for r in reminders] == ["Old Co", "New Co"]
        assert reminders[0].details == "Pending payment of $10.00 (Issued: 2020-01-01)"
        assert all(r.due == "pending" for r in reminders)


class TestOrdering:
    def test_appointments_first_then_invoices_in_snapshot_order(self):
        appointments = [
            _appointment(1, client_name="B"),
            _appointment(0, client_name="A"),
        ]
        invoices = [Invoice(client_name="Z"), Invoice(client_name="Y")]
        reminders = due_reminders(appointments, invoices, TODAY)
        assert [r.client for r in reminders] == ["B", "A", "Z", "Y"]
        assert [r.kind for r in reminders] == [
            "Appointment",
            "Appointment",
            "Invoice Follow Up",
            "Invoice Follow Up",
        ]

    def test_inputs_untouched(self):
        appointments = [_appointment(0)]
        due_reminders(appointments, [], TODAY)
        due_reminders(appointments, [], TODAY)
        assert appointments[0].status == AppointmentStatus.SCHEDULED


class TestFormatting:
    def test_all_clear(self):
        assert format_reminders([]) == ALL_CLEAR

    def test_header_counts(self):
        text = format_reminders(due_reminders([_appointment(0)], [Invoice()], TODAY))
        assert text.splitlines()[0] == "Immediate Follow-Ups (2)"
