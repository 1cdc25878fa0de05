"""
Value objects - immutable, self-validating primitives

Every constructor validates its input and raises a domain error instead of
coercing invalid values.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from ..config import DEFAULT_CURRENCY, DEFAULT_PHONE_COUNTRY_CODE
from ..shared.validators import canonical_phone, format_phone, validate_email
from .errors import (
    CurrencyMismatchError,
    InvalidDateRangeError,
    InvalidEmailError,
    InvalidPhoneError,
    NegativeValueError,
    ValidationError,
)

CURRENCY_SYMBOLS = {"BRL": "R$", "USD": "$", "EUR": "€"}


@dataclass(frozen=True)
class Phone:
    """Phone number in canonical digits-only form (country code included)"""

    value: str

    @classmethod
    def create(cls, raw: str, country_code: str = DEFAULT_PHONE_COUNTRY_CODE) -> "Phone":
        try:
            return cls(canonical_phone(raw, country_code))
        except ValueError as e:
            raise InvalidPhoneError(raw, str(e)) from e

    @classmethod
    def from_persistence(cls, value: str) -> "Phone":
        """Rebuild from an already canonical stored value"""
        return cls(value)

    @property
    def country_code(self) -> str:
        return self.value[: len(self.value) - self.national_number_length]

    @property
    def national_number_length(self) -> int:
        return 11 if len(self.value) >= 13 else 10

    @property
    def is_mobile(self) -> bool:
        return self.national_number_length == 11

    def format(self) -> str:
        """Display format, e.g. (11) 98765-4321"""
        return format_phone(self.value)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Email:
    value: str

    @classmethod
    def create(cls, raw: str) -> "Email":
        if not raw or not raw.strip():
            raise InvalidEmailError(raw)
        try:
            return cls(validate_email(raw))
        except ValueError as e:
            raise InvalidEmailError(raw) from e

    @property
    def domain(self) -> str:
        return self.value.split("@", 1)[1]

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Money:
    """Non-negative amount with a currency tag"""

    amount: Decimal
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self):
        try:
            amount = Decimal(str(self.amount))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"Invalid amount: {self.amount}") from e
        if not amount.is_finite():
            raise ValidationError(f"Invalid amount: {self.amount}")
        if amount < 0:
            raise NegativeValueError(f"Amount cannot be negative: {amount}")
        object.__setattr__(self, "amount", amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
        object.__setattr__(self, "currency", (self.currency or DEFAULT_CURRENCY).upper())

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> "Money":
        return cls(Decimal("0"), currency)

    @classmethod
    def from_cents(cls, cents: int, currency: str = DEFAULT_CURRENCY) -> "Money":
        return cls(Decimal(int(cents)) / 100, currency)

    def to_cents(self) -> int:
        return int(self.amount * 100)

    def _check_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        result = self.amount - other.amount
        if result < 0:
            raise NegativeValueError(f"Subtraction would produce a negative amount: {result}")
        return Money(result, self.currency)

    def __mul__(self, factor: Union[int, Decimal]) -> "Money":
        return Money(self.amount * Decimal(str(factor)), self.currency)

    def is_zero(self) -> bool:
        return self.amount == 0

    def format(self) -> str:
        """Locale-style display, e.g. R$ 1.234,50"""
        symbol = CURRENCY_SYMBOLS.get(self.currency, self.currency)
        whole, cents = f"{self.amount:.2f}".split(".")
        if self.currency == "BRL":
            grouped = f"{int(whole):,}".replace(",", ".")
            return f"{symbol} {grouped},{cents}"
        return f"{symbol}{int(whole):,}.{cents}"

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True, order=True)
class Duration:
    """Non-negative whole number of minutes"""

    minutes: int

    def __post_init__(self):
        if isinstance(self.minutes, bool) or not isinstance(self.minutes, int):
            raise ValidationError(f"Duration must be a whole number of minutes: {self.minutes}")
        if self.minutes < 0:
            raise NegativeValueError(f"Duration cannot be negative: {self.minutes}")

    @classmethod
    def from_hours(cls, hours: float) -> "Duration":
        return cls(int(round(hours * 60)))

    @property
    def hours(self) -> float:
        return self.minutes / 60

    def to_timedelta(self) -> timedelta:
        return timedelta(minutes=self.minutes)

    def __add__(self, other: "Duration") -> "Duration":
        return Duration(self.minutes + other.minutes)

    def __sub__(self, other: "Duration") -> "Duration":
        result = self.minutes - other.minutes
        if result < 0:
            raise NegativeValueError(f"Subtraction would produce a negative duration: {result}")
        return Duration(result)

    def format(self) -> str:
        """Compact display, e.g. 1h30min, 45min, 2h"""
        hours, minutes = divmod(self.minutes, 60)
        if hours and minutes:
            return f"{hours}h{minutes}min"
        if hours:
            return f"{hours}h"
        return f"{minutes}min"

    def __str__(self) -> str:
        return self.format()


@dataclass(frozen=True)
class DateRange:
    """
    Closed interval [start, end] of aware datetimes.

    `contains` is inclusive at both ends while `overlaps` is strict, so two
    ranges that only touch (10:00-10:30 and 10:30-11:00) do not overlap.
    """

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start > self.end:
            raise InvalidDateRangeError(f"Start {self.start.isoformat()} is after end {self.end.isoformat()}")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    def overlaps(self, other: "DateRange") -> bool:
        return self.start < other.end and self.end > other.start

    def contains_range(self, other: "DateRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def duration_hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600

    def is_empty(self) -> bool:
        return self.start == self.end

    def subtract(self, other: "DateRange") -> list["DateRange"]:
        """Parts of this range not covered by `other` (0, 1 or 2 ranges)"""
        if not self.overlaps(other):
            return [self]

        remaining = []
        if other.start > self.start:
            remaining.append(DateRange(self.start, other.start))
        if other.end < self.end:
            remaining.append(DateRange(other.end, self.end))
        return remaining
