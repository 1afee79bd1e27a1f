"""
Rate Policies - price one usage record as a (quantity, unit price) pair.

Configured rates are never trusted blindly: non-positive rates fall back to
the defaults and anything above the unit price ceiling is clamped.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from playback_billing.config import RatePolicyName, Settings
from playback_billing.models.domain import MAX_UNIT_PRICE, MediaItemType, UsageRecord
from playback_billing.observability import get_logger

logger = get_logger(__name__)

DEFAULT_HOURLY_RATE = Decimal("1.00")
DEFAULT_ITEM_TYPE_RATES = {
    MediaItemType.MOVIE: Decimal("5.00"),
    MediaItemType.EPISODE: Decimal("1.00"),
    MediaItemType.OTHER: Decimal("1.00"),
}

MAX_BILLABLE_HOURS = Decimal("24")
HOURS_PRECISION = Decimal("0.01")


def effective_rate(rate: Decimal | None, default: Decimal, name: str = "rate") -> Decimal:
    """Configured rate with fallback for non-positive values and a hard ceiling."""
    if rate is None or not rate.is_finite() or rate <= 0:
        logger.warning(
            "rate_fallback_to_default", rate=name, configured=str(rate), default=str(default)
        )
        return default
    if rate > MAX_UNIT_PRICE:
        logger.warning("rate_clamped", rate=name, configured=str(rate), maximum=str(MAX_UNIT_PRICE))
        return MAX_UNIT_PRICE
    return rate


class RatePolicy(Protocol):
    """Prices a usage record."""

    def price(self, record: UsageRecord) -> tuple[Decimal, Decimal]:
        """Return (quantity, unit_price) for the record."""
        ...


class HourlyRatePolicy:
    """Bill watched hours, rounded to cents of an hour, at one hourly rate."""

    def __init__(self, hourly_rate: Decimal = DEFAULT_HOURLY_RATE) -> None:
        self.hourly_rate = effective_rate(hourly_rate, DEFAULT_HOURLY_RATE, "hourly_rate")

    def price(self, record: UsageRecord) -> tuple[Decimal, Decimal]:
        hours = record.duration_hours.quantize(HOURS_PRECISION, rounding=ROUND_HALF_UP)
        quantity = min(max(hours, Decimal("0")), MAX_BILLABLE_HOURS)
        return quantity, self.hourly_rate


class PerItemTypeRatePolicy:
    """Flat price per viewed item, chosen by item type."""

    def __init__(self, rates: dict[MediaItemType, Decimal] | None = None) -> None:
        rates = rates or {}
        self.rates = {
            item_type: effective_rate(
                rates.get(item_type), default, f"{item_type.value.lower()}_rate"
            )
            for item_type, default in DEFAULT_ITEM_TYPE_RATES.items()
        }

    def price(self, record: UsageRecord) -> tuple[Decimal, Decimal]:
        return Decimal("1"), self.rates[record.item_type]


def rate_policy_from_settings(settings: Settings) -> RatePolicy:
    """Build the configured rate policy."""
    if settings.rate_policy == RatePolicyName.PER_ITEM_TYPE:
        return PerItemTypeRatePolicy(
            {
                MediaItemType.MOVIE: settings.movie_rate,
                MediaItemType.EPISODE: settings.episode_rate,
                MediaItemType.OTHER: settings.other_rate,
            }
        )
    return HourlyRatePolicy(settings.hourly_rate)
