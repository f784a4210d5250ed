"""Error kinds shared by the I/O boundary and the calculation core."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    MISSING_DATA = "missing_data"
    IMPLAUSIBLE_VALUE = "implausible_value"
    VALIDATION_FAILURE = "validation_failure"
    SOURCE_UNAVAILABLE = "source_unavailable"


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a call into an external collaborator.

    Either ``value`` is set, or ``error`` names what went wrong. Callers turn a
    failed result into "no data" before handing anything to the scoring code.
    """

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, detail: str | None = None) -> "Result[T]":
        return cls(error=error, detail=detail)

    def unwrap_or(self, default: T) -> T:
        if self.error is not None or self.value is None:
            return default
        return self.value


class MealApiError(Exception):
    """Recipe API answered with an error or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class QuotaExceededError(MealApiError):
    """Recipe API daily quota is used up (HTTP 402)."""
