"""Appointment entity and its status state machine"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from ..errors import InvalidDateError, InvalidDateRangeError, InvalidStateTransitionError, PastAppointmentError
from ..value_objects import DateRange


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# pending -> confirmed -> cancelled, pending -> cancelled; cancelled is terminal
ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.CANCELLED},
    AppointmentStatus.CANCELLED: set(),
}


def ensure_aware(value: datetime, field_name: str) -> datetime:
    if not isinstance(value, datetime):
        raise InvalidDateError(f"{field_name} must be a datetime")
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvalidDateError(f"{field_name} must be timezone-aware")
    return value


@dataclass
class Appointment:
    """
    One booking of a service with a professional.

    Never hard-deleted: cancellation is a status change so history and
    re-sync with external providers remain possible. `external_ids` maps a
    provider name (e.g. "google_calendar", "trinks") to the id of the
    event/booking created on that provider.
    """

    id: str
    salon_id: str
    professional_id: str
    customer_id: str
    service_id: str
    starts_at: datetime
    ends_at: datetime
    status: AppointmentStatus = AppointmentStatus.PENDING
    notes: Optional[str] = None
    external_ids: dict[str, str] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1

    def __post_init__(self):
        ensure_aware(self.starts_at, "starts_at")
        ensure_aware(self.ends_at, "ends_at")
        if self.starts_at >= self.ends_at:
            raise InvalidDateRangeError("Appointment start must be before its end")
        self.status = AppointmentStatus(self.status)

    @classmethod
    def create(
        cls,
        *,
        salon_id: str,
        professional_id: str,
        customer_id: str,
        service_id: str,
        starts_at: datetime,
        duration_minutes: int,
        now: datetime,
        status: AppointmentStatus = AppointmentStatus.PENDING,
        notes: Optional[str] = None,
        appointment_id: Optional[str] = None,
    ) -> "Appointment":
        """Build a new booking; past start times and cancelled initial states are rejected"""
        ensure_aware(starts_at, "starts_at")
        if starts_at < now:
            raise PastAppointmentError("Cannot book an appointment in the past")
        if status == AppointmentStatus.CANCELLED:
            raise InvalidStateTransitionError("new", AppointmentStatus.CANCELLED.value)

        return cls(
            id=appointment_id or str(uuid.uuid4()),
            salon_id=salon_id,
            professional_id=professional_id,
            customer_id=customer_id,
            service_id=service_id,
            starts_at=starts_at,
            ends_at=starts_at + timedelta(minutes=duration_minutes),
            status=status,
            notes=notes,
            created_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def date_range(self) -> DateRange:
        return DateRange(self.starts_at, self.ends_at)

    @property
    def duration_minutes(self) -> int:
        return self.date_range.duration_minutes()

    @property
    def is_cancelled(self) -> bool:
        return self.status == AppointmentStatus.CANCELLED

    def has_started(self, now: datetime) -> bool:
        return self.starts_at < now

    def is_past(self, now: datetime) -> bool:
        return self.ends_at < now

    def is_upcoming(self, now: datetime) -> bool:
        return self.starts_at > now and not self.is_cancelled

    def is_in_progress(self, now: datetime) -> bool:
        return self.starts_at <= now < self.ends_at

    def can_be_modified(self, now: datetime) -> bool:
        return not self.has_started(now) and not self.is_cancelled

    def overlaps(self, other: "Appointment") -> bool:
        # Cancelled appointments never conflict
        if self.is_cancelled or other.is_cancelled:
            return False
        return self.date_range.overlaps(other.date_range)

    def external_event_id(self, provider: str) -> Optional[str]:
        return self.external_ids.get(provider)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _transition(self, target: AppointmentStatus, now: datetime) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStateTransitionError(self.status.value, target.value)
        self.status = target
        self._touch(now)

    def _ensure_modifiable(self, now: datetime) -> None:
        if self.has_started(now):
            raise PastAppointmentError()
        if self.is_cancelled:
            raise InvalidStateTransitionError(self.status.value, "modified")

    def confirm(self, now: datetime) -> bool:
        """Returns False when already confirmed"""
        if self.has_started(now):
            raise PastAppointmentError("Cannot confirm a past appointment")
        if self.status == AppointmentStatus.CONFIRMED:
            return False
        self._transition(AppointmentStatus.CONFIRMED, now)
        return True

    def cancel(self, now: datetime) -> bool:
        """
        Cancel the appointment.

        Past appointments are immutable, so this always raises
        PastAppointmentError once the start time has passed. Cancelling an
        already cancelled appointment is a no-op and returns False.
        """
        if self.has_started(now):
            raise PastAppointmentError("Cannot cancel a past appointment")
        if self.is_cancelled:
            return False
        self._transition(AppointmentStatus.CANCELLED, now)
        return True

    def reschedule(self, new_start: datetime, new_end: datetime, now: datetime) -> None:
        self._ensure_modifiable(now)
        ensure_aware(new_start, "starts_at")
        ensure_aware(new_end, "ends_at")
        if new_start < now:
            raise PastAppointmentError("Cannot reschedule to a time in the past")
        if new_start >= new_end:
            raise InvalidDateRangeError("Appointment start must be before its end")
        self.starts_at = new_start
        self.ends_at = new_end
        self._touch(now)

    def change_professional(self, professional_id: str, now: datetime) -> None:
        self._ensure_modifiable(now)
        self.professional_id = professional_id
        self._touch(now)

    def change_service(self, service_id: str, now: datetime, duration_minutes: Optional[int] = None) -> None:
        """Switch service; the end time follows the new duration when given"""
        self._ensure_modifiable(now)
        self.service_id = service_id
        if duration_minutes:
            self.ends_at = self.starts_at + timedelta(minutes=duration_minutes)
        self._touch(now)

    def update_notes(self, notes: Optional[str], now: datetime) -> None:
        self._ensure_modifiable(now)
        self.notes = notes
        self._touch(now)

    def set_external_event_id(self, provider: str, event_id: Optional[str], now: Optional[datetime] = None) -> None:
        """
        Record (or clear with None) the id a provider assigned to this booking.

        Does not change status. Recording a new id on a cancelled booking is
        rejected; clearing is always allowed so removal can be recorded after
        cancellation.
        """
        if event_id is None:
            self.external_ids.pop(provider, None)
        else:
            if self.is_cancelled:
                raise InvalidStateTransitionError(self.status.value, "synced")
            self.external_ids[provider] = event_id
        if now is not None:
            self._touch(now)

    def _touch(self, now: datetime) -> None:
        self.updated_at = now
