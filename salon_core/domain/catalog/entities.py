"""Professionals and the services they perform"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..errors import RequiredFieldError
from ..value_objects import Duration, Money


@dataclass
class Professional:
    id: str
    salon_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True
    service_ids: set[str] = field(default_factory=set)
    external_calendar_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise RequiredFieldError("name")
        self.service_ids = set(self.service_ids)

    def can_perform_service(self, service_id: str) -> bool:
        return service_id in self.service_ids

    def is_available(self) -> bool:
        return self.is_active

    def has_external_calendar(self) -> bool:
        return bool(self.external_calendar_id)

    def add_service(self, service_id: str) -> None:
        self.service_ids.add(service_id)

    def remove_service(self, service_id: str) -> None:
        self.service_ids.discard(service_id)

    def activate(self) -> None:
        self.is_active = True

    def deactivate(self) -> None:
        self.is_active = False


@dataclass
class Service:
    """A fixed-duration offering with a price"""

    id: str
    salon_id: str
    name: str
    duration: Duration
    price: Money
    is_active: bool = True
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise RequiredFieldError("name")
        if isinstance(self.duration, int):
            self.duration = Duration(self.duration)

    @property
    def duration_minutes(self) -> int:
        return self.duration.minutes

    def is_bookable(self) -> bool:
        return self.is_active and self.duration.minutes > 0

    def format_price(self) -> str:
        return self.price.format()

    def format_duration(self) -> str:
        return self.duration.format()

    def activate(self) -> None:
        self.is_active = True

    def deactivate(self) -> None:
        self.is_active = False
