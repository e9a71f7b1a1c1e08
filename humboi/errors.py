"""
Error classes and failure classification for humboi.

Every failure that crosses the store boundary is expressed as a
ClassifiedFailure carrying a FailureCategory. The category drives retry
decisions:

- BUSY, UNAVAILABLE, INTERRUPTED: transient, retried by the default policy
- NOT_FOUND: a referenced setup or resource is missing, never retried
- OTHER: catch-all for unclassified failures, never retried

Failures from external libraries (sqlite3, google-api-core) are mapped
into the enum by classify_exception(). Unmapped failures become OTHER.
"""

import sqlite3
from enum import Enum
from typing import NoReturn, Optional, Union

from google.api_core import exceptions as gexc


class HumboiError(Exception):
    """Base exception for humboi."""
    pass


class ConfigError(HumboiError):
    """Configuration is missing or invalid."""
    pass


class FailureCategory(str, Enum):
    """Retry-relevant failure categories."""

    BUSY = "busy"
    UNAVAILABLE = "unavailable"
    INTERRUPTED = "interrupted"
    NOT_FOUND = "not-found"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Union["FailureCategory", str]) -> "FailureCategory":
        """Accept a category, its value ("not-found") or its name ("NOT_FOUND")."""
        if isinstance(value, cls):
            return value
        key = str(value).strip()
        try:
            return cls(key.lower().replace("_", "-"))
        except ValueError:
            raise ValueError(f"Unknown failure category: {value}") from None


RETRYABLE_CATEGORIES = frozenset({
    FailureCategory.BUSY,
    FailureCategory.UNAVAILABLE,
    FailureCategory.INTERRUPTED,
})


class ClassifiedFailure(HumboiError):
    """
    A failure tagged with a retry-relevant category.

    The category is fixed at raise time. When a cause is given it is also
    chained as __cause__ so tracebacks show the root failure.
    """

    def __init__(
        self,
        category: Union[FailureCategory, str],
        message: str,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self._category = FailureCategory.parse(category)
        self._message = message
        self._cause = cause
        if cause is not None:
            self.__cause__ = cause

    @property
    def category(self) -> FailureCategory:
        return self._category

    @property
    def message(self) -> str:
        return self._message

    @property
    def cause(self) -> Optional[BaseException]:
        return self._cause

    @property
    def retryable(self) -> bool:
        return self._category in RETRYABLE_CATEGORIES

    def __repr__(self) -> str:
        return f"ClassifiedFailure({self._category.name}, {self._message!r})"


def anomaly(
    category: Union[FailureCategory, str],
    message: str,
    cause: Optional[BaseException] = None,
) -> NoReturn:
    """
    Raise a ClassifiedFailure.

    Args:
        category: FailureCategory or its string form (e.g. "not-found")
        message: Human-readable message
        cause: Optional underlying exception

    Raises:
        ClassifiedFailure: Always
    """
    raise ClassifiedFailure(category, message, cause)


def is_retryable(failure: ClassifiedFailure) -> bool:
    """Default retry predicate: transient categories only."""
    return failure.category in RETRYABLE_CATEGORIES


# google-api-core exception types mapped 1:1 onto categories.
# Order matters: subclasses before their bases.
_GOOGLE_CATEGORIES: tuple[tuple[type, FailureCategory], ...] = (
    (gexc.DeadlineExceeded, FailureCategory.INTERRUPTED),
    (gexc.TooManyRequests, FailureCategory.BUSY),
    (gexc.Conflict, FailureCategory.BUSY),
    (gexc.ServiceUnavailable, FailureCategory.UNAVAILABLE),
    (gexc.BadGateway, FailureCategory.UNAVAILABLE),
    (gexc.GatewayTimeout, FailureCategory.UNAVAILABLE),
    (gexc.InternalServerError, FailureCategory.UNAVAILABLE),
    (gexc.NotFound, FailureCategory.NOT_FOUND),
)

_SQLITE_BUSY_MARKERS = ("database is locked", "database is busy", "database table is locked")


def _sqlite_category(exc: sqlite3.Error) -> FailureCategory:
    text = str(exc).lower()
    if isinstance(exc, sqlite3.OperationalError):
        if any(marker in text for marker in _SQLITE_BUSY_MARKERS):
            return FailureCategory.BUSY
        if "interrupted" in text:
            return FailureCategory.INTERRUPTED
        if "unable to open database" in text or "disk i/o error" in text:
            return FailureCategory.UNAVAILABLE
    return FailureCategory.OTHER


def classify_exception(exc: BaseException) -> ClassifiedFailure:
    """
    Map an exception raised by an external collaborator into a ClassifiedFailure.

    ClassifiedFailure instances pass through unchanged. Everything else is
    wrapped with the original exception kept as cause.

    Args:
        exc: Exception raised by a store operation

    Returns:
        ClassifiedFailure with the mapped category
    """
    if isinstance(exc, ClassifiedFailure):
        return exc

    category = FailureCategory.OTHER
    if isinstance(exc, sqlite3.Error):
        category = _sqlite_category(exc)
    elif isinstance(exc, gexc.GoogleAPICallError):
        for exc_type, mapped in _GOOGLE_CATEGORIES:
            if isinstance(exc, exc_type):
                category = mapped
                break
    elif isinstance(exc, TimeoutError):
        category = FailureCategory.INTERRUPTED
    elif isinstance(exc, InterruptedError):
        category = FailureCategory.INTERRUPTED
    elif isinstance(exc, ConnectionError):
        category = FailureCategory.UNAVAILABLE

    return ClassifiedFailure(category, str(exc) or type(exc).__name__, cause=exc)
