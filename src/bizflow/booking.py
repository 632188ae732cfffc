"""Booking availability port and the appointment form presentation model.

Online meetings must have their slot confirmed through an
``AvailabilityChecker`` before the form can be saved. The confirmation flag
lives only on ``AppointmentForm``; ``Appointment`` never carries it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from bizflow.errors import ValidationFailure
from bizflow.models import Appointment, MeetingType, new_appointment

logger = logging.getLogger(__name__)


class Availability(str, Enum):
    AVAILABLE = "Available"
    BUSY = "Busy"


@runtime_checkable
class AvailabilityChecker(Protocol):
    """Capability that answers whether a calendar slot is free."""

    async def check_availability(self, date: str, time: str) -> Availability:
        ...


class AlwaysAvailable:
    async def check_availability(self, date: str, time: str) -> Availability:
        return Availability.AVAILABLE


@dataclass
class BusySlots:
    """Deterministic checker: listed (date, time) pairs are busy."""

    busy: set[tuple[str, str]] = field(default_factory=set)

    async def check_availability(self, date: str, time: str) -> Availability:
        if (date, time) in self.busy:
            return Availability.BUSY
        return Availability.AVAILABLE


@dataclass
class AppointmentForm:
    """UI state for creating an appointment."""

    appointment: Appointment = field(default_factory=new_appointment)
    is_confirmed: bool = False

    @property
    def requires_confirmation(self) -> bool:
        return self.appointment.meeting_type == MeetingType.ONLINE

    @property
    def can_save(self) -> bool:
        return not self.requires_confirmation or self.is_confirmed

    def with_changes(self, **changes: Any) -> AppointmentForm:
        """Apply field edits; changing meeting_type resets the confirmation."""
        appointment = replace(self.appointment, **changes)
        confirmed = self.is_confirmed
        if "meeting_type" in changes or "date" in changes or "time" in changes:
            confirmed = False
        return AppointmentForm(appointment=appointment, is_confirmed=confirmed)

    def with_meeting_type(self, meeting_type: MeetingType | str) -> AppointmentForm:
        return self.with_changes(meeting_type=meeting_type)

    async def check_slot(self, checker: AvailabilityChecker) -> tuple[AppointmentForm, Availability]:
        """Ask the checker about the current date/time and record the answer."""
        if not self.appointment.date or not self.appointment.time:
            raise ValidationFailure(
                "Please select both a date and a time before checking availability."
            )
        result = await checker.check_availability(self.appointment.date, self.appointment.time)
        logger.info(
            "Slot %s @ %s is %s", self.appointment.date, self.appointment.time, result.value
        )
        confirmed = result == Availability.AVAILABLE
        return replace(self, is_confirmed=confirmed), result

    def to_dict(self) -> dict[str, Any]:
        """Form state including the transient flag (stripped by the store)."""
        doc = self.appointment.to_dict()
        doc["isConfirmed"] = self.is_confirmed
        return doc
