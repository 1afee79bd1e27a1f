"""
Tests for exception classes.

Covers the hierarchy, attributes and string representations.
"""

from pathlib import Path

import pytest

from playback_billing.config import ConfigurationError
from playback_billing.exceptions import (
    BillingError,
    ConcurrencyError,
    InvalidFormatError,
    InvalidValueError,
    OutOfRangeError,
    StorageIOError,
    ValidationError,
)


class TestBillingError:
    """Tests for base BillingError."""

    def test_billing_error_is_exception(self):
        assert issubclass(BillingError, Exception)

    @pytest.mark.parametrize(
        "exc_class", [ValidationError, StorageIOError, ConcurrencyError]
    )
    def test_subclasses(self, exc_class):
        assert issubclass(exc_class, BillingError)

    def test_configuration_error_is_separate(self):
        assert not issubclass(ConfigurationError, BillingError)


class TestValidationError:
    """Tests for ValidationError and its subclasses."""

    def test_is_value_error(self):
        """Callers catching ValueError also catch validation failures."""
        with pytest.raises(ValueError):
            raise InvalidFormatError("user_id", "invalid identifier format")

    def test_attributes_and_message(self):
        exc = InvalidValueError("period_end", "period end must be after period start")
        assert exc.param_name == "period_end"
        assert exc.message == "period end must be after period start"
        assert str(exc) == "period_end: period end must be after period start"

    @pytest.mark.parametrize("exc_class", [InvalidFormatError, InvalidValueError, OutOfRangeError])
    def test_subclasses(self, exc_class):
        assert issubclass(exc_class, ValidationError)


class TestOutOfRangeError:
    """Tests for OutOfRangeError."""

    def test_attributes(self):
        exc = OutOfRangeError("quantity", 1001, 0, 1000)
        assert exc.param_name == "quantity"
        assert exc.value == 1001
        assert exc.minimum == 0
        assert exc.maximum == 1000

    def test_message(self):
        exc = OutOfRangeError("quantity", 1001, 0, 1000)
        assert str(exc) == "quantity: value 1001 must be between 0 and 1000"


class TestStorageIOError:
    """Tests for StorageIOError."""

    def test_attributes(self):
        path = Path("/data/invoices.json")
        exc = StorageIOError(path, "write failed: disk full")
        assert exc.path == path
        assert exc.message == "write failed: disk full"
        assert "invoices.json" in str(exc)


class TestConcurrencyError:
    """Tests for ConcurrencyError."""

    def test_attributes(self):
        exc = ConcurrencyError("viewing_records")
        assert exc.resource == "viewing_records"
        assert str(exc) == "Timed out waiting for lock on viewing_records"
