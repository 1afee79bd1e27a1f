"""
Domain Models - Internal business logic models using dataclasses.

Every model checks its invariants on construction, so a value that exists is
a value that has been validated, whether it came from a playback event or
from disk.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from playback_billing.exceptions import InvalidValueError
from playback_billing.validation import (
    TICKS_PER_SECOND,
    sanitize_text,
    validate_currency_code,
    validate_duration,
    validate_identifier,
    validate_number_range,
    validate_timestamp,
)

TICKS_PER_HOUR = 3600 * TICKS_PER_SECOND

MAX_QUANTITY = Decimal("1000")
MAX_UNIT_PRICE = Decimal("10000")

DEFAULT_MAX_TITLE_LENGTH = 200
DEFAULT_MAX_DESCRIPTION_LENGTH = 500


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def ticks_from_timedelta(delta: timedelta) -> int:
    """Convert a timedelta to 100-nanosecond ticks."""
    return (delta // timedelta(microseconds=1)) * 10


class MediaItemType(str, Enum):
    """Media item type for billing purposes."""

    MOVIE = "Movie"
    EPISODE = "Episode"
    OTHER = "Other"

    @classmethod
    def from_hint(cls, hint: Any) -> "MediaItemType":
        """Map a loose type hint from the event source; anything unknown is Other."""
        if isinstance(hint, cls):
            return hint
        if isinstance(hint, str):
            for member in cls:
                if member.value.lower() == hint.strip().lower():
                    return member
        return cls.OTHER

    @classmethod
    def parse(cls, raw: Any) -> "MediaItemType":
        """Strictly parse a stored item type."""
        if isinstance(raw, cls):
            return raw
        try:
            return cls(raw)
        except ValueError as exc:
            raise InvalidValueError("item_type", f"unknown item type {raw!r}") from exc


@dataclass(frozen=True)
class UsageRecord:
    """Immutable description of one completed playback session."""

    id: UUID
    user_id: UUID
    item_id: UUID
    item_name: str
    item_type: MediaItemType
    start_time: datetime
    end_time: datetime
    duration_ticks: int

    def __post_init__(self) -> None:
        """Validate usage record invariants."""
        validate_identifier(self.id, "id")
        validate_identifier(self.user_id, "user_id")
        validate_identifier(self.item_id, "item_id")
        if not isinstance(self.item_name, str):
            raise InvalidValueError("item_name", "item name must be a string")
        if not isinstance(self.item_type, MediaItemType):
            raise InvalidValueError("item_type", f"unknown item type {self.item_type!r}")
        for name in ("start_time", "end_time"):
            value = getattr(self, name)
            validate_timestamp(value, name)
            if value.tzinfo is None:
                raise InvalidValueError(name, "timestamp must be timezone-aware")
        if self.end_time <= self.start_time:
            raise InvalidValueError("end_time", "end time must be after start time")
        validate_duration(self.duration_ticks)

    @classmethod
    def create(
        cls,
        *,
        user_id: Any,
        item_id: Any,
        item_name: Any,
        item_type: Any,
        start_time: Any,
        end_time: Any,
        duration_ticks: Any,
        record_id: Any = None,
        max_name_length: int = DEFAULT_MAX_TITLE_LENGTH,
    ) -> "UsageRecord":
        """Build a record from untrusted values, running every validator."""
        return cls(
            id=uuid4() if record_id is None else validate_identifier(record_id, "id"),
            user_id=validate_identifier(user_id, "user_id"),
            item_id=validate_identifier(item_id, "item_id"),
            item_name=sanitize_text(item_name, max_name_length),
            item_type=MediaItemType.parse(item_type),
            start_time=validate_timestamp(start_time, "start_time"),
            end_time=validate_timestamp(end_time, "end_time"),
            duration_ticks=validate_duration(duration_ticks),
        )

    @property
    def duration(self) -> timedelta:
        """Duration as a timedelta (microsecond resolution)."""
        return timedelta(microseconds=self.duration_ticks // 10)

    @property
    def duration_hours(self) -> Decimal:
        """Duration in hours for billing calculations."""
        return Decimal(self.duration_ticks) / Decimal(TICKS_PER_HOUR)


@dataclass(frozen=True)
class LineItem:
    """One priced charge on an invoice, derived from one usage record."""

    viewing_record_id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal

    def __post_init__(self) -> None:
        """Validate line item bounds."""
        validate_identifier(self.viewing_record_id, "viewing_record_id")
        if not isinstance(self.description, str):
            raise InvalidValueError("description", "description must be a string")
        validate_number_range(self.quantity, Decimal("0"), MAX_QUANTITY, "quantity")
        validate_number_range(self.unit_price, Decimal("0"), MAX_UNIT_PRICE, "unit_price")

    @classmethod
    def create(
        cls,
        *,
        viewing_record_id: Any,
        description: Any,
        quantity: Any,
        unit_price: Any,
        max_description_length: int = DEFAULT_MAX_DESCRIPTION_LENGTH,
    ) -> "LineItem":
        """Build a line item from untrusted values."""
        return cls(
            viewing_record_id=validate_identifier(viewing_record_id, "viewing_record_id"),
            description=sanitize_text(description, max_description_length),
            quantity=validate_number_range(
                _to_decimal(quantity, "quantity"), Decimal("0"), MAX_QUANTITY, "quantity"
            ),
            unit_price=validate_number_range(
                _to_decimal(unit_price, "unit_price"), Decimal("0"), MAX_UNIT_PRICE, "unit_price"
            ),
        )

    @property
    def amount(self) -> Decimal:
        """Charge for this line (quantity * unit_price)."""
        return self.quantity * self.unit_price


@dataclass
class Invoice:
    """
    Billing document for one user over one period.

    The invoice owns its line items. The total is derived from them on every
    access and never stored.
    """

    id: UUID
    user_id: UUID
    period_start: datetime
    period_end: datetime
    currency_code: str
    created_at: datetime = field(default_factory=_utc_now)
    line_items: list[LineItem] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Validate invoice invariants."""
        validate_identifier(self.id, "id")
        validate_identifier(self.user_id, "user_id")
        if validate_currency_code(self.currency_code) != self.currency_code:
            raise InvalidValueError("currency_code", "currency code must be uppercase")
        for name in ("period_start", "period_end", "created_at"):
            value = getattr(self, name)
            validate_timestamp(value, name)
            if value.tzinfo is None:
                raise InvalidValueError(name, "timestamp must be timezone-aware")
        if self.period_end <= self.period_start:
            raise InvalidValueError("period_end", "period end must be after period start")
        for item in self.line_items:
            if not isinstance(item, LineItem):
                raise InvalidValueError("line_items", "line items must be LineItem instances")

    def add_line_item(self, line_item: LineItem) -> None:
        """Append a line item; insertion order is kept."""
        if not isinstance(line_item, LineItem):
            raise TypeError(f"Expected LineItem, got {type(line_item).__name__}")
        self.line_items.append(line_item)

    @property
    def total_amount(self) -> Decimal:
        """Sum of all line item amounts."""
        return sum((item.amount for item in self.line_items), Decimal("0"))


# ============================================================================
# Playback events (event source boundary - every field is untrusted)
# ============================================================================


@dataclass(frozen=True)
class PlaybackStartEvent:
    """Playback started notification as delivered by the host."""

    session_token: Any = None
    user_id: Any = None
    item_id: Any = None
    item_name: Any = None
    item_type_hint: Any = None


@dataclass(frozen=True)
class PlaybackStopEvent:
    """Playback stopped notification as delivered by the host."""

    session_token: Any = None
    position_ticks: Any = None


def _to_decimal(value: Any, param_name: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise InvalidValueError(param_name, f"expected a decimal, got {type(value).__name__}")
    try:
        return Decimal(str(value))
    except ArithmeticError as exc:
        raise InvalidValueError(param_name, f"invalid decimal {value!r}") from exc
