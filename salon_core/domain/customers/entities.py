"""Customer entity"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..value_objects import Email, Phone


@dataclass
class Customer:
    """
    A salon customer, identified by normalized phone number (unique per salon).

    `extra_phones` holds additional numbers the customer has contacted from;
    they are persisted as rows of their own, not as a serialized list.
    """

    id: str
    salon_id: str
    phone: Phone
    name: str
    email: Optional[Email] = None
    extra_phones: list[Phone] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_identified(self) -> bool:
        return bool(self.name and self.name.strip())

    def all_phones(self) -> list[Phone]:
        return [self.phone] + [p for p in self.extra_phones if p != self.phone]

    def has_phone(self, phone: Phone) -> bool:
        return phone in self.all_phones()

    def add_phone(self, phone: Phone) -> bool:
        """Returns False when the number is already known"""
        if self.has_phone(phone):
            return False
        self.extra_phones.append(phone)
        return True

    def update_name(self, name: str) -> None:
        self.name = name.strip()

    def update_email(self, email: Optional[Email]) -> None:
        self.email = email
