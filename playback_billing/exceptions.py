"""
Exception Classes - Strongly typed exception hierarchy.

Validation failures are local and never crash the process. Storage failures
propagate to the caller of the persistence layer. Absence (an unknown invoice,
nothing to bill) is an Optional result, never an exception.
"""

from pathlib import Path
from typing import Any


class BillingError(Exception):
    """Base exception for all billing errors."""

    pass


class ValidationError(BillingError, ValueError):
    """Raised when an externally sourced value fails validation."""

    def __init__(self, param_name: str, message: str) -> None:
        self.param_name = param_name
        self.message = message
        super().__init__(f"{param_name}: {message}")


class InvalidFormatError(ValidationError):
    """Raised when a value is empty or not in the expected format."""

    pass


class InvalidValueError(ValidationError):
    """Raised when a well-formed value is semantically unacceptable."""

    pass


class OutOfRangeError(ValidationError):
    """Raised when a numeric value falls outside its allowed range."""

    def __init__(self, param_name: str, value: Any, minimum: Any, maximum: Any) -> None:
        self.value = value
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(param_name, f"value {value} must be between {minimum} and {maximum}")


class StorageIOError(BillingError):
    """Raised when reading or writing a collection file fails."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"Storage error for {path}: {message}")


class ConcurrencyError(BillingError):
    """Raised when a collection lock cannot be acquired in time."""

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"Timed out waiting for lock on {resource}")
