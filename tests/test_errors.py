"""Tests for humboi error classes and failure classification.

Tests cover:
- Error hierarchy
- ClassifiedFailure fields and immutability of category
- anomaly() raiser
- Boundary mapping of sqlite3, google-api-core and builtin exceptions
"""

import sqlite3

import pytest
from google.api_core import exceptions as gexc

from humboi.errors import (
    ClassifiedFailure,
    ConfigError,
    FailureCategory,
    HumboiError,
    anomaly,
    classify_exception,
    is_retryable,
)


class TestHierarchy:
    """Tests for the exception hierarchy."""

    def test_classified_failure_is_humboi_error(self):
        assert issubclass(ClassifiedFailure, HumboiError)

    def test_config_error_is_humboi_error(self):
        assert issubclass(ConfigError, HumboiError)

    def test_humboi_error_is_exception(self):
        assert issubclass(HumboiError, Exception)


class TestFailureCategory:
    """Tests for FailureCategory parsing."""

    @pytest.mark.parametrize("raw, expected", [
        ("busy", FailureCategory.BUSY),
        ("not-found", FailureCategory.NOT_FOUND),
        ("NOT_FOUND", FailureCategory.NOT_FOUND),
        (FailureCategory.OTHER, FailureCategory.OTHER),
    ])
    def test_parse(self, raw, expected):
        assert FailureCategory.parse(raw) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown failure category"):
            FailureCategory.parse("fault")


class TestClassifiedFailure:
    """Tests for ClassifiedFailure."""

    def test_fields(self):
        cause = OSError("disk")
        failure = ClassifiedFailure(FailureCategory.UNAVAILABLE, "store down", cause)

        assert failure.category is FailureCategory.UNAVAILABLE
        assert failure.message == "store down"
        assert failure.cause is cause
        assert failure.__cause__ is cause
        assert str(failure) == "store down"

    def test_category_is_read_only(self):
        failure = ClassifiedFailure("busy", "busy")
        with pytest.raises(AttributeError):
            failure.category = FailureCategory.OTHER

    def test_no_cause(self):
        failure = ClassifiedFailure("other", "boom")
        assert failure.cause is None
        assert failure.__cause__ is None

    @pytest.mark.parametrize("category, retryable", [
        (FailureCategory.BUSY, True),
        (FailureCategory.UNAVAILABLE, True),
        (FailureCategory.INTERRUPTED, True),
        (FailureCategory.NOT_FOUND, False),
        (FailureCategory.OTHER, False),
    ])
    def test_default_retryability(self, category, retryable):
        failure = ClassifiedFailure(category, "x")
        assert failure.retryable is retryable
        assert is_retryable(failure) is retryable


class TestAnomaly:
    """Tests for anomaly()."""

    def test_raises_with_category(self):
        with pytest.raises(ClassifiedFailure) as excinfo:
            anomaly("not-found", "Could not resolve setup")

        assert excinfo.value.category is FailureCategory.NOT_FOUND
        assert excinfo.value.message == "Could not resolve setup"

    def test_raises_with_cause(self):
        cause = ValueError("bad")
        with pytest.raises(ClassifiedFailure) as excinfo:
            anomaly(FailureCategory.OTHER, "wrapped", cause)

        assert excinfo.value.cause is cause


class TestClassifyException:
    """Tests for classify_exception boundary mapping."""

    def test_classified_failure_passes_through(self):
        failure = ClassifiedFailure("busy", "busy")
        assert classify_exception(failure) is failure

    @pytest.mark.parametrize("exc, expected", [
        (sqlite3.OperationalError("database is locked"), FailureCategory.BUSY),
        (sqlite3.OperationalError("database table is locked"), FailureCategory.BUSY),
        (sqlite3.OperationalError("interrupted"), FailureCategory.INTERRUPTED),
        (sqlite3.OperationalError("unable to open database file"), FailureCategory.UNAVAILABLE),
        (sqlite3.OperationalError("no such table: datoms"), FailureCategory.OTHER),
        (sqlite3.IntegrityError("constraint failed"), FailureCategory.OTHER),
    ])
    def test_sqlite_errors(self, exc, expected):
        assert classify_exception(exc).category is expected

    @pytest.mark.parametrize("exc, expected", [
        (gexc.TooManyRequests("rate limited"), FailureCategory.BUSY),
        (gexc.Conflict("concurrent update"), FailureCategory.BUSY),
        (gexc.ServiceUnavailable("down"), FailureCategory.UNAVAILABLE),
        (gexc.InternalServerError("oops"), FailureCategory.UNAVAILABLE),
        (gexc.BadGateway("gateway"), FailureCategory.UNAVAILABLE),
        (gexc.DeadlineExceeded("deadline"), FailureCategory.INTERRUPTED),
        (gexc.NotFound("no dataset"), FailureCategory.NOT_FOUND),
        (gexc.Forbidden("denied"), FailureCategory.OTHER),
        (gexc.BadRequest("invalid"), FailureCategory.OTHER),
    ])
    def test_google_errors(self, exc, expected):
        assert classify_exception(exc).category is expected

    @pytest.mark.parametrize("exc, expected", [
        (TimeoutError("slow"), FailureCategory.INTERRUPTED),
        (InterruptedError("signal"), FailureCategory.INTERRUPTED),
        (ConnectionResetError("reset"), FailureCategory.UNAVAILABLE),
        (ConnectionRefusedError("refused"), FailureCategory.UNAVAILABLE),
        (ValueError("bad value"), FailureCategory.OTHER),
        (RuntimeError("unknown"), FailureCategory.OTHER),
    ])
    def test_builtin_errors(self, exc, expected):
        assert classify_exception(exc).category is expected

    def test_original_kept_as_cause(self):
        exc = ValueError("bad value")
        failure = classify_exception(exc)

        assert failure.cause is exc
        assert failure.message == "bad value"

    def test_empty_message_uses_type_name(self):
        assert classify_exception(RuntimeError()).message == "RuntimeError"
