"""
Invoice Generator - aggregates a user's usage records into an invoice.

Every caller-supplied value is validated before any data is touched. Having
nothing to bill is not an error: it returns None.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from playback_billing.config import Settings
from playback_billing.db.stores import DataStore
from playback_billing.exceptions import InvalidValueError
from playback_billing.models.domain import Invoice, LineItem, UsageRecord
from playback_billing.observability import get_logger, metrics
from playback_billing.services.rates import RatePolicy, rate_policy_from_settings
from playback_billing.validation import (
    validate_currency_code,
    validate_identifier,
    validate_timestamp,
)

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class InvoiceGenerator:
    """Builds, stores and retrieves invoices for one data store."""

    def __init__(
        self,
        settings: Settings,
        data_store: DataStore,
        rate_policy: RatePolicy | None = None,
    ) -> None:
        self._settings = settings
        self._data_store = data_store
        self._rate_policy = rate_policy or rate_policy_from_settings(settings)

    def generate_invoice(
        self, user_id: Any, period_start: Any, period_end: Any
    ) -> Invoice | None:
        """
        Invoice every record of the user lying within [period_start, period_end].

        Returns:
            The stored invoice, or None when the period holds no usage

        Raises:
            ValidationError: invalid user id or timestamps, or end <= start
            StorageIOError: the invoice could not be written
        """
        valid_user_id = validate_identifier(user_id, "user_id")
        start = validate_timestamp(period_start, "period_start")
        end = validate_timestamp(period_end, "period_end")
        if end <= start:
            raise InvalidValueError("period_end", "period end must be after period start")

        records = self._data_store.usage_records.query(valid_user_id, start, end)
        if not records:
            metrics.invoices_generated_total.labels(outcome="empty").inc()
            logger.info(
                "no_usage_to_invoice",
                user_id=str(valid_user_id),
                period_start=start.isoformat(),
                period_end=end.isoformat(),
            )
            return None

        invoice = Invoice(
            id=uuid4(),
            user_id=valid_user_id,
            period_start=start,
            period_end=end,
            currency_code=validate_currency_code(self._settings.currency_code),
            created_at=_utc_now(),
        )
        for record in records:
            invoice.add_line_item(self._line_item(record))

        self._data_store.invoices.save(invoice)

        metrics.invoices_generated_total.labels(outcome="generated").inc()
        logger.info(
            "invoice_generated",
            invoice_id=str(invoice.id),
            user_id=str(valid_user_id),
            line_items=len(invoice.line_items),
            total_amount=str(invoice.total_amount),
            currency=invoice.currency_code,
        )
        return invoice

    def generate_current_period_invoice(self, user_id: Any) -> Invoice | None:
        """Invoice the configured number of days up to now."""
        period_end = _utc_now()
        period_start = period_end - timedelta(days=self._settings.invoice_period_days)
        return self.generate_invoice(user_id, period_start, period_end)

    def get_user_invoices(self, user_id: Any) -> list[Invoice]:
        return self._data_store.invoices.get_for_user(validate_identifier(user_id, "user_id"))

    def get_invoice(self, invoice_id: Any) -> Invoice | None:
        return self._data_store.invoices.get(validate_identifier(invoice_id, "invoice_id"))

    def delete_invoice(self, invoice_id: Any) -> bool:
        return self._data_store.invoices.delete(validate_identifier(invoice_id, "invoice_id"))

    def _line_item(self, record: UsageRecord) -> LineItem:
        quantity, unit_price = self._rate_policy.price(record)
        description = (
            f"{record.item_type.value}: {record.item_name} - "
            f"{record.start_time.strftime('%Y-%m-%d')}"
        )
        return LineItem.create(
            viewing_record_id=record.id,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            max_description_length=self._settings.max_description_length,
        )
