"""Tests for the availability port and appointment form state."""

import pytest

from bizflow.booking import (
    AlwaysAvailable,
    AppointmentForm,
    Availability,
    AvailabilityChecker,
    BusySlots,
)
from bizflow.errors import ValidationFailure
from bizflow.models import Appointment, MeetingType


def _online_form(**kw) -> AppointmentForm:
    appointment = Appointment(
        client_name="Ann",
        date="2026-10-20",
        time="14:00",
        meeting_type=MeetingType.ONLINE,
        **kw,
    )
    return AppointmentForm(appointment=appointment)


class TestCheckers:
    def test_protocol(self):
        assert isinstance(AlwaysAvailable(), AvailabilityChecker)
        assert isinstance(BusySlots(), AvailabilityChecker)

    @pytest.mark.asyncio
    async def test_busy_slots_are_deterministic(self):
        checker = BusySlots({("2026-10-20", "14:00")})
        assert await checker.check_availability("2026-10-20", "14:00") == Availability.BUSY
        assert await checker.check_availability("2026-10-20", "15:00") == Availability.AVAILABLE


class TestAppointmentForm:
    def test_in_person_can_save_without_check(self):
        assert AppointmentForm().can_save

    def test_online_needs_confirmation(self):
        form = _online_form()
        assert form.requires_confirmation
        assert not form.can_save

    @pytest.mark.asyncio
    async def test_available_slot_confirms(self):
        form, result = await _online_form().check_slot(AlwaysAvailable())
        assert result == Availability.AVAILABLE
        assert form.is_confirmed
        assert form.can_save

    @pytest.mark.asyncio
    async def test_busy_slot_does_not_confirm(self):
        checker = BusySlots({("2026-10-20", "14:00")})
        form, result = await _online_form().check_slot(checker)
        assert result == Availability.BUSY
        assert not form.is_confirmed

    @pytest.mark.asyncio
    async def test_missing_time_rejected(self):
        form = _online_form().with_changes(time="")
        with pytest.raises(ValidationFailure, match="date and a time"):
            await form.check_slot(AlwaysAvailable())

    @pytest.mark.asyncio
    async def test_meeting_type_change_resets_confirmation(self):
        form, _ = await _online_form().check_slot(AlwaysAvailable())
        switched = form.with_meeting_type(MeetingType.IN_PERSON)
        assert not switched.is_confirmed
        back = switched.with_meeting_type("Online")
        assert not back.is_confirmed
        assert not back.can_save

    @pytest.mark.asyncio
    async def test_other_edits_keep_confirmation(self):
        form, _ = await _online_form().check_slot(AlwaysAvailable())
        assert form.with_changes(contact="ann@example.com").is_confirmed

    def test_flag_only_on_form(self):
        form = AppointmentForm(is_confirmed=True)
        assert form.to_dict()["isConfirmed"] is True
        assert "isConfirmed" not in form.appointment.to_dict()
