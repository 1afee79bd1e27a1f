"""
Input Validation - Centralized sanitization and bound checks.

Every externally sourced value (playback events, request parameters and
anything read back from storage) passes through these functions before it
is trusted. Structured values either validate or raise a ValidationError
subclass; free text is always sanitized, never rejected.
"""

import math
import re
import unicodedata
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any, TypeVar
from uuid import UUID

from playback_billing.exceptions import InvalidFormatError, InvalidValueError, OutOfRangeError

# Upper bound on any sanitized string, regardless of the caller's limit
ABSOLUTE_MAX_TEXT_LENGTH = 10_000

# Durations are counted in 100-nanosecond ticks, the host media server's unit
TICKS_PER_SECOND = 10_000_000
MAX_DURATION_TICKS = 24 * 60 * 60 * TICKS_PER_SECOND

# Nothing older than the first supported server release is accepted
EARLIEST_TIMESTAMP = datetime(2018, 1, 1, tzinfo=UTC)
CLOCK_SKEW_TOLERANCE = timedelta(minutes=5)

_CURRENCY_CODE_PATTERN = re.compile(r"[A-Za-z]{3}")

_DANGEROUS_PATTERN = re.compile(
    r"<script|</script|javascript:|vbscript:|data:|onclick|onerror|onload"
    r"|eval\(|expression\(|\.\./|\.\.\\|\x00",
    re.IGNORECASE,
)

# Removing a fragment can splice together a new one ("<scr<scriptipt"),
# so sanitizing repeats until the text is stable.
_MAX_SANITIZE_PASSES = 8

N = TypeVar("N", int, float, Decimal)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def validate_identifier(raw: Any, param_name: str = "id") -> UUID:
    """
    Validate an opaque identifier and return it as a UUID.

    Accepts UUID instances or their string forms. Empty, malformed and nil
    identifiers are rejected.
    """
    if isinstance(raw, UUID):
        value = raw
    elif isinstance(raw, str):
        if not raw.strip():
            raise InvalidFormatError(param_name, "identifier cannot be empty")
        try:
            value = UUID(raw.strip())
        except ValueError as exc:
            raise InvalidFormatError(param_name, "invalid identifier format") from exc
    elif raw is None:
        raise InvalidFormatError(param_name, "identifier cannot be empty")
    else:
        raise InvalidFormatError(param_name, f"unsupported identifier type {type(raw).__name__}")

    if value.int == 0:
        raise InvalidFormatError(param_name, "identifier cannot be the nil UUID")
    return value


def _strip_control_characters(text: str, allow_newlines: bool) -> str:
    return "".join(
        ch
        for ch in text
        if unicodedata.category(ch) != "Cc" or (allow_newlines and ch in "\r\n")
    )


def _strip_dangerous_patterns(text: str) -> str:
    while _DANGEROUS_PATTERN.search(text):
        text = _DANGEROUS_PATTERN.sub("", text)
    return text


def _sanitize_pass(text: str, max_length: int, allow_newlines: bool) -> str:
    cleaned = unicodedata.normalize("NFKC", text)
    cleaned = _strip_control_characters(cleaned, allow_newlines)
    cleaned = _strip_dangerous_patterns(cleaned)
    return cleaned[:max_length].strip()


def sanitize_text(raw: str | None, max_length: int, allow_newlines: bool = False) -> str:
    """
    Sanitize free text for storage and display.

    NFKC-normalizes the input to collapse compatibility variants, removes
    control characters (newlines optionally kept), strips script tags, script
    URI schemes, inline event handlers, eval/expression calls, path traversal
    sequences and NUL bytes, truncates to min(max_length, 10000) and trims.

    Never raises. The result is a fixed point: sanitizing it again returns it
    unchanged.
    """
    if not raw:
        return ""
    if not isinstance(raw, str):
        raw = str(raw)

    effective_max = max(0, min(max_length, ABSOLUTE_MAX_TEXT_LENGTH))
    text = raw
    for _ in range(_MAX_SANITIZE_PASSES):
        cleaned = _sanitize_pass(text, effective_max, allow_newlines)
        if cleaned == text:
            break
        text = cleaned
    return text


def validate_currency_code(raw: str | None) -> str:
    """Validate an ISO 4217 currency code and return it uppercased."""
    if raw is None or not str(raw).strip():
        raise InvalidFormatError("currency_code", "currency code cannot be empty")

    code = str(raw).strip()
    # Checked before upper(), which can lengthen text ("ß" -> "SS")
    if not _CURRENCY_CODE_PATTERN.fullmatch(code):
        raise InvalidFormatError("currency_code", "currency code must be 3 letters")
    return code.upper()


def validate_number_range(value: N, minimum: N, maximum: N, param_name: str = "value") -> N:
    """Validate a number lies within [minimum, maximum], inclusive."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise InvalidValueError(param_name, f"expected a number, got {type(value).__name__}")
    if isinstance(value, Decimal) and not value.is_finite():
        raise InvalidValueError(param_name, "value must be finite")
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidValueError(param_name, "value must be finite")

    if value < minimum or value > maximum:
        raise OutOfRangeError(param_name, value, minimum, maximum)
    return value


def validate_timestamp(value: datetime | None, param_name: str = "timestamp") -> datetime:
    """
    Validate a timestamp and normalize it to UTC.

    Rejects missing and uninitialized values, anything before the epoch floor
    and anything later than now plus the clock-skew tolerance. Naive values
    are taken to already be UTC.
    """
    if value is None:
        raise InvalidValueError(param_name, "timestamp is required")
    if not isinstance(value, datetime):
        raise InvalidFormatError(param_name, f"expected a datetime, got {type(value).__name__}")
    if value.replace(tzinfo=None) == datetime.min:
        raise InvalidValueError(param_name, "timestamp cannot be the default value")

    if value.tzinfo is None:
        normalized = value.replace(tzinfo=UTC)
    else:
        try:
            normalized = value.astimezone(UTC)
        except OverflowError as exc:
            raise InvalidValueError(param_name, "timestamp is out of range") from exc

    if normalized < EARLIEST_TIMESTAMP:
        raise InvalidValueError(param_name, "timestamp is too far in the past")
    if normalized > _utc_now() + CLOCK_SKEW_TOLERANCE:
        raise InvalidValueError(param_name, "timestamp cannot be in the future")
    return normalized


def validate_duration(ticks: int, param_name: str = "duration_ticks") -> int:
    """Validate a duration in ticks is between zero and 24 hours."""
    if isinstance(ticks, bool) or not isinstance(ticks, int):
        raise InvalidValueError(param_name, f"expected an integer, got {type(ticks).__name__}")
    if ticks < 0 or ticks > MAX_DURATION_TICKS:
        raise OutOfRangeError(param_name, ticks, 0, MAX_DURATION_TICKS)
    return ticks
