"""
Usage Record and Invoice Stores - the persistence layer.

Each store owns one JsonCollection and serializes its whole
load-modify-write cycle under that collection's lock. The two collections
have separate locks, so usage-record and invoice operations never block each
other.

Anything read back is re-validated. Entries that fail are logged and
skipped on read, but are kept untouched when the document is rewritten.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from playback_billing.config import Settings
from playback_billing.db.json_store import JsonCollection, validate_data_directory
from playback_billing.db.records import StoredInvoice, StoredUsageRecord
from playback_billing.exceptions import ValidationError
from playback_billing.models.domain import (
    DEFAULT_MAX_DESCRIPTION_LENGTH,
    DEFAULT_MAX_TITLE_LENGTH,
    Invoice,
    UsageRecord,
)
from playback_billing.observability import get_logger, metrics
from playback_billing.validation import validate_identifier, validate_timestamp

logger = get_logger(__name__)

VIEWING_RECORDS_FILE = "viewing_records.json"
INVOICES_FILE = "invoices.json"


def _raw_id(item: dict[str, Any]) -> UUID | None:
    """Identifier of a raw entry, or None if it has no readable id."""
    try:
        return UUID(str(item.get("id")))
    except ValueError:
        return None


class UsageRecordStore:
    """Append-only collection of completed playback sessions."""

    def __init__(
        self, collection: JsonCollection, max_name_length: int = DEFAULT_MAX_TITLE_LENGTH
    ) -> None:
        self._collection = collection
        self._max_name_length = max_name_length

    def save(self, record: UsageRecord) -> None:
        """
        Append a record to the collection.

        Raises:
            StorageIOError: the collection could not be written
            ConcurrencyError: the collection lock was not acquired in time
        """
        if not isinstance(record, UsageRecord):
            raise TypeError(f"Expected UsageRecord, got {type(record).__name__}")

        entry = StoredUsageRecord.from_domain(record).to_json_dict()
        with self._collection.locked():
            items = self._collection.read_items()
            items.append(entry)
            self._collection.write_items(items)

        metrics.usage_records_saved_total.inc()
        logger.debug("usage_record_saved", record_id=str(record.id), user_id=str(record.user_id))

    def query(self, user_id: Any, start: datetime, end: datetime) -> list[UsageRecord]:
        """
        Records for one user that lie entirely within [start, end].

        Returned in insertion order. Records failing re-validation are
        skipped.
        """
        valid_user_id = validate_identifier(user_id, "user_id")
        valid_start = validate_timestamp(start, "start")
        valid_end = validate_timestamp(end, "end")

        with self._collection.locked():
            items = self._collection.read_items()

        result = []
        for item in items:
            stored = self._parse(item)
            if stored is None or stored.user_id != valid_user_id:
                continue
            # Time bounds are compared after re-validation has normalized to UTC
            record = self._revalidate(stored)
            if record is None:
                continue
            if valid_start <= record.start_time and record.end_time <= valid_end:
                result.append(record)
        return result

    def all_records(self) -> list[UsageRecord]:
        """Every record that passes re-validation."""
        with self._collection.locked():
            items = self._collection.read_items()

        result = []
        for item in items:
            stored = self._parse(item)
            record = self._revalidate(stored) if stored is not None else None
            if record is not None:
                result.append(record)
        return result

    def _parse(self, item: dict[str, Any]) -> StoredUsageRecord | None:
        try:
            return StoredUsageRecord.model_validate(item)
        except PydanticValidationError as exc:
            self._skip(item, exc)
            return None

    def _revalidate(self, stored: StoredUsageRecord) -> UsageRecord | None:
        try:
            return stored.to_domain(self._max_name_length)
        except ValidationError as exc:
            self._skip(stored.model_dump(), exc)
            return None

    def _skip(self, item: dict[str, Any], exc: Exception) -> None:
        metrics.corrupt_entries_skipped_total.labels(collection=self._collection.name).inc()
        logger.warning(
            "corrupt_record_skipped",
            collection=self._collection.name,
            record_id=str(item.get("id")),
            error=str(exc),
        )


class InvoiceStore:
    """Collection of generated invoices."""

    def __init__(
        self,
        collection: JsonCollection,
        max_description_length: int = DEFAULT_MAX_DESCRIPTION_LENGTH,
    ) -> None:
        self._collection = collection
        self._max_description_length = max_description_length

    def save(self, invoice: Invoice) -> None:
        """Append an invoice to the collection."""
        if not isinstance(invoice, Invoice):
            raise TypeError(f"Expected Invoice, got {type(invoice).__name__}")

        entry = StoredInvoice.from_domain(invoice).to_json_dict()
        with self._collection.locked():
            items = self._collection.read_items()
            items.append(entry)
            self._collection.write_items(items)

        logger.info("invoice_saved", invoice_id=str(invoice.id), user_id=str(invoice.user_id))

    def get_for_user(self, user_id: Any) -> list[Invoice]:
        """All valid invoices for a user, in insertion order."""
        valid_user_id = validate_identifier(user_id, "user_id")

        with self._collection.locked():
            items = self._collection.read_items()

        result = []
        for item in items:
            stored = self._parse(item)
            if stored is None or stored.user_id != valid_user_id:
                continue
            invoice = self._revalidate(stored)
            if invoice is not None:
                result.append(invoice)
        return result

    def get(self, invoice_id: Any) -> Invoice | None:
        """The invoice with this id, or None if absent or invalid."""
        valid_id = validate_identifier(invoice_id, "invoice_id")

        with self._collection.locked():
            items = self._collection.read_items()

        for item in items:
            if _raw_id(item) != valid_id:
                continue
            stored = self._parse(item)
            return self._revalidate(stored) if stored is not None else None
        return None

    def delete(self, invoice_id: Any) -> bool:
        """Remove the invoice with this id. Returns whether anything was removed."""
        valid_id = validate_identifier(invoice_id, "invoice_id")

        with self._collection.locked():
            items = self._collection.read_items()
            remaining = [item for item in items if _raw_id(item) != valid_id]
            if len(remaining) == len(items):
                return False
            self._collection.write_items(remaining)

        logger.info("invoice_deleted", invoice_id=str(valid_id))
        return True

    def all_invoices(self) -> list[Invoice]:
        """Every invoice that passes re-validation."""
        with self._collection.locked():
            items = self._collection.read_items()

        result = []
        for item in items:
            stored = self._parse(item)
            invoice = self._revalidate(stored) if stored is not None else None
            if invoice is not None:
                result.append(invoice)
        return result

    def _parse(self, item: dict[str, Any]) -> StoredInvoice | None:
        try:
            return StoredInvoice.model_validate(item)
        except PydanticValidationError as exc:
            self._skip(item, exc)
            return None

    def _revalidate(self, stored: StoredInvoice) -> Invoice | None:
        try:
            return stored.to_domain(self._max_description_length)
        except ValidationError as exc:
            self._skip(stored.model_dump(), exc)
            return None

    def _skip(self, item: dict[str, Any], exc: Exception) -> None:
        metrics.corrupt_entries_skipped_total.labels(collection=self._collection.name).inc()
        logger.warning(
            "corrupt_invoice_skipped",
            collection=self._collection.name,
            invoice_id=str(item.get("id")),
            error=str(exc),
        )


class DataStore:
    """Both collections over one validated data directory."""

    def __init__(self, settings: Settings) -> None:
        self.directory = validate_data_directory(settings.data_dir)
        timeout = settings.storage_lock_timeout_seconds
        self.usage_records = UsageRecordStore(
            JsonCollection(self.directory, VIEWING_RECORDS_FILE, timeout),
            max_name_length=settings.max_title_length,
        )
        self.invoices = InvoiceStore(
            JsonCollection(self.directory, INVOICES_FILE, timeout),
            max_description_length=settings.max_description_length,
        )
