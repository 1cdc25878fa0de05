"""
External provider ports

Two independent kinds of provider exist:
- CalendarPort: calendar products (events CRUD + free/busy)
- BookingPort: third-party booking systems (bookings CRUD + busy slots)

Both expose the uniform create/update/remove/busy_intervals surface the
sync orchestrator and the availability service drive, so the orchestrator
never needs to know which kind it is talking to.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..value_objects import DateRange


@dataclass(frozen=True)
class ExternalAppointment:
    """Everything a provider needs to mirror one appointment"""

    appointment_id: str
    salon_id: str
    professional_id: str
    customer_id: str
    service_id: str
    starts_at: datetime
    ends_at: datetime
    status: str
    notes: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    professional_name: Optional[str] = None
    professional_calendar_id: Optional[str] = None
    service_name: Optional[str] = None

    @property
    def title(self) -> str:
        service = self.service_name or "Appointment"
        return f"{service} - {self.customer_name}" if self.customer_name else service


class ExternalProvider(ABC):
    """Common surface of every sync target"""

    name: str = ""
    kind: str = ""

    @abstractmethod
    async def is_configured(self, salon_id: str) -> bool: ...

    @abstractmethod
    async def create(self, appointment: ExternalAppointment) -> str:
        """Create the remote counterpart and return its id"""

    @abstractmethod
    async def update(self, external_id: str, appointment: ExternalAppointment) -> None:
        """Raises ExternalEventNotFoundError when the remote counterpart is gone"""

    @abstractmethod
    async def remove(self, external_id: str, appointment: ExternalAppointment) -> None:
        """Raises ExternalEventNotFoundError when already removed"""

    @abstractmethod
    async def busy_intervals(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[DateRange]: ...


class CalendarPort(ExternalProvider):
    kind = "calendar"

    @abstractmethod
    async def create_event(self, appointment: ExternalAppointment) -> str: ...

    @abstractmethod
    async def update_event(self, event_id: str, appointment: ExternalAppointment) -> None: ...

    @abstractmethod
    async def delete_event(self, event_id: str, appointment: ExternalAppointment) -> None: ...

    @abstractmethod
    async def free_busy(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[DateRange]: ...

    async def create(self, appointment: ExternalAppointment) -> str:
        return await self.create_event(appointment)

    async def update(self, external_id: str, appointment: ExternalAppointment) -> None:
        await self.update_event(external_id, appointment)

    async def remove(self, external_id: str, appointment: ExternalAppointment) -> None:
        await self.delete_event(external_id, appointment)

    async def busy_intervals(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[DateRange]:
        return await self.free_busy(salon_id, professional_id, range_start, range_end)


class BookingPort(ExternalProvider):
    kind = "booking"

    @abstractmethod
    async def create_booking(self, appointment: ExternalAppointment) -> str: ...

    @abstractmethod
    async def update_booking(self, booking_id: str, appointment: ExternalAppointment) -> None: ...

    @abstractmethod
    async def cancel_booking(self, booking_id: str, appointment: ExternalAppointment) -> None: ...

    @abstractmethod
    async def busy_slots(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[DateRange]: ...

    async def create(self, appointment: ExternalAppointment) -> str:
        return await self.create_booking(appointment)

    async def update(self, external_id: str, appointment: ExternalAppointment) -> None:
        await self.update_booking(external_id, appointment)

    async def remove(self, external_id: str, appointment: ExternalAppointment) -> None:
        await self.cancel_booking(external_id, appointment)

    async def busy_intervals(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[DateRange]:
        return await self.busy_slots(salon_id, professional_id, range_start, range_end)
