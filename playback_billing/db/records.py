"""
Stored Models - on-disk representation of usage records and invoices.

Pydantic parses the raw JSON objects; converting to the domain model then
re-applies every input validation rule, because storage is untrusted.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from playback_billing.models.domain import (
    DEFAULT_MAX_DESCRIPTION_LENGTH,
    DEFAULT_MAX_TITLE_LENGTH,
    Invoice,
    LineItem,
    UsageRecord,
)
from playback_billing.validation import (
    validate_currency_code,
    validate_identifier,
    validate_timestamp,
)


class StoredModel(BaseModel):
    """camelCase JSON keys, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict:
        """Serialize for the JSON document."""
        return self.model_dump(mode="json", by_alias=True)


class StoredUsageRecord(StoredModel):
    """Usage record as written to viewing_records.json."""

    id: UUID
    user_id: UUID
    item_id: UUID
    item_name: str
    item_type: str
    start_time: datetime
    end_time: datetime
    duration_ticks: int

    @classmethod
    def from_domain(cls, record: UsageRecord) -> "StoredUsageRecord":
        return cls(
            id=record.id,
            user_id=record.user_id,
            item_id=record.item_id,
            item_name=record.item_name,
            item_type=record.item_type.value,
            start_time=record.start_time,
            end_time=record.end_time,
            duration_ticks=record.duration_ticks,
        )

    def to_domain(self, max_name_length: int = DEFAULT_MAX_TITLE_LENGTH) -> UsageRecord:
        """Re-validate and build the domain record."""
        return UsageRecord.create(
            record_id=self.id,
            user_id=self.user_id,
            item_id=self.item_id,
            item_name=self.item_name,
            item_type=self.item_type,
            start_time=self.start_time,
            end_time=self.end_time,
            duration_ticks=self.duration_ticks,
            max_name_length=max_name_length,
        )


class StoredLineItem(StoredModel):
    """Line item embedded in a stored invoice."""

    viewing_record_id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal

    @classmethod
    def from_domain(cls, item: LineItem) -> "StoredLineItem":
        return cls(
            viewing_record_id=item.viewing_record_id,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
        )


class StoredInvoice(StoredModel):
    """Invoice as written to invoices.json."""

    id: UUID
    user_id: UUID
    period_start: datetime
    period_end: datetime
    currency_code: str
    created_at: datetime
    line_items: list[StoredLineItem]

    @classmethod
    def from_domain(cls, invoice: Invoice) -> "StoredInvoice":
        return cls(
            id=invoice.id,
            user_id=invoice.user_id,
            period_start=invoice.period_start,
            period_end=invoice.period_end,
            currency_code=invoice.currency_code,
            created_at=invoice.created_at,
            line_items=[StoredLineItem.from_domain(item) for item in invoice.line_items],
        )

    def to_domain(
        self, max_description_length: int = DEFAULT_MAX_DESCRIPTION_LENGTH
    ) -> Invoice:
        """Re-validate and build the domain invoice, line items included."""
        invoice = Invoice(
            id=validate_identifier(self.id, "id"),
            user_id=validate_identifier(self.user_id, "user_id"),
            period_start=validate_timestamp(self.period_start, "period_start"),
            period_end=validate_timestamp(self.period_end, "period_end"),
            currency_code=validate_currency_code(self.currency_code),
            created_at=validate_timestamp(self.created_at, "created_at"),
        )
        for item in self.line_items:
            invoice.add_line_item(
                LineItem.create(
                    viewing_record_id=item.viewing_record_id,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    max_description_length=max_description_length,
                )
            )
        return invoice
