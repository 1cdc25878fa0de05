"""Shared validation utilities"""

import re
import uuid
from typing import Optional

from ..config import DEFAULT_PHONE_COUNTRY_CODE


def validate_uuid(value: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


def normalize_phone(phone: str) -> str:
    """Remove all formatting from a phone number, keeping only digits"""
    return re.sub(r"\D", "", phone or "")


def canonical_phone(phone: Optional[str], country_code: str = DEFAULT_PHONE_COUNTRY_CODE) -> str:
    """
    Validate and normalize a Brazilian phone number to its canonical form.

    Args:
        phone: Phone number string in various formats

    Returns:
        Digits-only phone number prefixed with the country code (e.g. 5511987654321)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone or not phone.strip():
        raise ValueError("Phone number is required")

    digits = normalize_phone(phone)

    # Must have between 10 and 13 digits (with or without country code)
    if len(digits) < 10 or len(digits) > 13:
        raise ValueError("Phone number must have between 10 and 13 digits")

    national = digits
    if len(digits) in (12, 13) and digits.startswith(country_code):
        national = digits[len(country_code):]

    # Landline (10) or mobile (11)
    if len(national) not in (10, 11):
        raise ValueError("Phone number must have 10 or 11 digits without the country code")

    area_code = int(national[:2])
    if area_code < 11 or area_code > 99:
        raise ValueError("Invalid area code")

    # Mobile numbers start with 9 after the area code
    if len(national) == 11 and national[2] != "9":
        raise ValueError("Mobile numbers must start with 9")

    return f"{country_code}{national}"


def format_phone(phone: str, country_code: str = DEFAULT_PHONE_COUNTRY_CODE) -> str:
    """
    Format a phone number for display.
    Ex: 5511987654321 -> (11) 98765-4321
    """
    digits = normalize_phone(phone)
    national = digits[len(country_code):] if digits.startswith(country_code) and len(digits) > 11 else digits

    if len(national) == 11:
        return f"({national[:2]}) {national[2:7]}-{national[7:]}"
    if len(national) == 10:
        return f"({national[:2]}) {national[2:6]}-{national[6:]}"

    return phone


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def parse_time_of_day(value: str) -> tuple[int, int]:
    """
    Parse "HH:MM" (or "HH:MM:SS") into (hour, minute).

    Raises:
        ValueError: If the string is not a valid time of day
    """
    match = re.match(r"^(\d{1,2}):(\d{2})(?::\d{2})?$", (value or "").strip())
    if not match:
        raise ValueError(f"Invalid time of day: {value}")

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time of day: {value}")
    return hour, minute
