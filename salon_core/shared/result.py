"""Discriminated success/error results returned by the service layer"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from ..domain.errors import DomainError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: bool = True


@dataclass(frozen=True)
class Err:
    error: DomainError
    ok: bool = False

    @property
    def code(self) -> str:
        return self.error.code


Result = Union[Ok[T], Err]
