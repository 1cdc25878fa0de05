"""Translate domain errors returned by services into HTTP responses"""

from fastapi import HTTPException

from ..domain.errors import ConflictError, DomainError, NotFoundError, PastAppointmentError, ValidationError
from .result import Err, Result


def http_exception_for(error: DomainError) -> HTTPException:
    if isinstance(error, ValidationError):
        status_code = 422
    elif isinstance(error, NotFoundError):
        status_code = 404
    elif isinstance(error, (ConflictError, PastAppointmentError)):
        status_code = 409
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail=error.to_dict())


def unwrap(result: Result):
    """Return the Ok value or raise the matching HTTPException"""
    if isinstance(result, Err):
        raise http_exception_for(result.error)
    return result.value
