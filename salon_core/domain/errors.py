"""
Domain error taxonomy

Families:
- ValidationError: invalid input, rejected before any persistence
- ConflictError: slot unavailable, booking conflict, invalid pairing
- NotFoundError: missing appointment/customer/professional/service
- PastAppointmentError: mutation of a historical appointment
"""

from typing import Optional


class DomainError(Exception):
    """Base class for expected domain conditions"""

    code = "DOMAIN_ERROR"
    default_message = "Domain rule violated"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


# ============================================================================
# VALIDATION
# ============================================================================


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class InvalidPhoneError(ValidationError):
    code = "INVALID_PHONE"
    default_message = "The phone number is invalid"

    def __init__(self, phone: Optional[str] = None, reason: Optional[str] = None):
        self.phone = phone
        message = f"Invalid phone: {phone}" if phone else self.default_message
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InvalidEmailError(ValidationError):
    code = "INVALID_EMAIL"
    default_message = "The email address is invalid"

    def __init__(self, email: Optional[str] = None):
        self.email = email
        super().__init__(f"Invalid email: {email}" if email else None)


class InvalidUUIDError(ValidationError):
    code = "INVALID_UUID"

    def __init__(self, field_name: str, value: Optional[str] = None):
        self.field_name = field_name
        if value:
            message = f"{field_name} is invalid: {value} is not a valid UUID"
        else:
            message = f"{field_name} must be a valid UUID"
        super().__init__(message)


class InvalidDateError(ValidationError):
    code = "INVALID_DATE"
    default_message = "The date is invalid"


class InvalidDateRangeError(ValidationError):
    code = "INVALID_DATE_RANGE"
    default_message = "Start must be before end"


class RequiredFieldError(ValidationError):
    code = "REQUIRED_FIELD"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f'The field "{field_name}" is required')


class OutOfRangeError(ValidationError):
    code = "OUT_OF_RANGE"

    def __init__(self, field_name: str, min_value=None, max_value=None):
        if min_value is not None and max_value is not None:
            message = f'"{field_name}" must be between {min_value} and {max_value}'
        elif min_value is not None:
            message = f'"{field_name}" must be greater than or equal to {min_value}'
        elif max_value is not None:
            message = f'"{field_name}" must be less than or equal to {max_value}'
        else:
            message = f'"{field_name}" is out of the allowed range'
        super().__init__(message)


class NegativeValueError(ValidationError):
    code = "NEGATIVE_VALUE"
    default_message = "Value cannot be negative"


class CurrencyMismatchError(ValidationError):
    code = "CURRENCY_MISMATCH"

    def __init__(self, left: str, right: str):
        super().__init__(f"Cannot combine amounts in different currencies: {left} and {right}")


# ============================================================================
# CONFLICTS
# ============================================================================


class ConflictError(DomainError):
    code = "CONFLICT"
    default_message = "The request conflicts with the current state"


class SlotUnavailableError(ConflictError):
    code = "SLOT_UNAVAILABLE"
    default_message = "The requested time slot is not available"


class AppointmentConflictError(ConflictError):
    code = "APPOINTMENT_CONFLICT"
    default_message = "There is already an appointment at this time"


class ProfessionalCannotPerformServiceError(ConflictError):
    code = "PROFESSIONAL_CANNOT_PERFORM_SERVICE"

    def __init__(self, professional_name: Optional[str] = None, service_name: Optional[str] = None):
        if professional_name and service_name:
            message = f'Professional "{professional_name}" does not perform "{service_name}"'
        elif professional_name:
            message = f'Professional "{professional_name}" does not perform this service'
        else:
            message = "The professional does not perform this service"
        super().__init__(message)


class ProfessionalNotAvailableError(ConflictError):
    code = "PROFESSIONAL_NOT_AVAILABLE"
    default_message = "The professional is not available"


class ServiceNotBookableError(ConflictError):
    code = "SERVICE_NOT_BOOKABLE"

    def __init__(self, service_name: Optional[str] = None):
        super().__init__(
            f'The service "{service_name}" cannot be booked' if service_name else "The service cannot be booked"
        )


class InvalidStateTransitionError(ConflictError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move appointment from {current} to {target}")


class ConcurrentModificationError(ConflictError):
    code = "CONCURRENT_MODIFICATION"
    default_message = "The appointment was modified by another request, reload and retry"


# ============================================================================
# NOT FOUND
# ============================================================================


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    entity = "Resource"

    def __init__(self, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} {entity_id} not found" if entity_id else f"{self.entity} not found")


class AppointmentNotFoundError(NotFoundError):
    code = "APPOINTMENT_NOT_FOUND"
    entity = "Appointment"


class CustomerNotFoundError(NotFoundError):
    code = "CUSTOMER_NOT_FOUND"
    entity = "Customer"


class ProfessionalNotFoundError(NotFoundError):
    code = "PROFESSIONAL_NOT_FOUND"
    entity = "Professional"


class ServiceNotFoundError(NotFoundError):
    code = "SERVICE_NOT_FOUND"
    entity = "Service"


# ============================================================================
# PAST STATE
# ============================================================================


class PastAppointmentError(DomainError):
    code = "PAST_APPOINTMENT"
    default_message = "Past appointments cannot be modified"
