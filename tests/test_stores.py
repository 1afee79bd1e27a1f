"""
Tests for the usage record and invoice stores.
"""

import json
import threading
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from playback_billing.db.stores import INVOICES_FILE, VIEWING_RECORDS_FILE
from playback_billing.exceptions import InvalidFormatError, InvalidValueError


def _query_around(store, user_id, base_time):
    """Records within one day either side of base_time."""
    return store.query(user_id, base_time - timedelta(days=1), base_time + timedelta(days=1))


class TestUsageRecordStore:
    """Tests for UsageRecordStore."""

    def test_round_trip(self, usage_store, make_usage_record, base_time, user_id):
        record = make_usage_record(user_id=user_id)
        usage_store.save(record)

        loaded = _query_around(usage_store, user_id, base_time)

        assert loaded == [record]

    def test_persisted_with_camel_case_keys(self, usage_store, make_usage_record, data_dir):
        record = make_usage_record()
        usage_store.save(record)

        document = json.loads((data_dir / VIEWING_RECORDS_FILE).read_text())
        assert document[0]["id"] == str(record.id)
        assert document[0]["userId"] == str(record.user_id)
        assert document[0]["itemType"] == "Movie"
        assert document[0]["durationTicks"] == record.duration_ticks

    def test_save_rejects_non_records(self, usage_store):
        with pytest.raises(TypeError):
            usage_store.save({"id": "not a record"})

    def test_query_filters_by_user(self, usage_store, make_usage_record, base_time, user_id):
        mine = make_usage_record(user_id=user_id)
        usage_store.save(mine)
        usage_store.save(make_usage_record())

        loaded = _query_around(usage_store, user_id, base_time)

        assert [record.id for record in loaded] == [mine.id]

    def test_query_requires_record_entirely_within_range(
        self, usage_store, make_usage_record, base_time, user_id
    ):
        inside = make_usage_record(user_id=user_id, start_time=base_time)
        straddling = make_usage_record(
            user_id=user_id, start_time=base_time + timedelta(hours=2), minutes=90
        )
        usage_store.save(inside)
        usage_store.save(straddling)

        loaded = usage_store.query(user_id, base_time, base_time + timedelta(hours=3))

        assert [record.id for record in loaded] == [inside.id]

    def test_query_keeps_insertion_order(self, usage_store, make_usage_record, base_time, user_id):
        records = [
            make_usage_record(user_id=user_id, start_time=base_time + timedelta(hours=offset))
            for offset in (3, 1, 2)
        ]
        for record in records:
            usage_store.save(record)

        loaded = _query_around(usage_store, user_id, base_time)

        assert [record.id for record in loaded] == [record.id for record in records]

    def test_query_validates_arguments(self, usage_store, base_time):
        with pytest.raises(InvalidFormatError):
            usage_store.query("bad-id", base_time, base_time + timedelta(hours=1))
        with pytest.raises(InvalidValueError):
            usage_store.query(uuid4(), None, base_time)

    def test_corrupt_entries_skipped(self, usage_store, make_usage_record, base_time, user_id, data_dir):
        good = make_usage_record(user_id=user_id)
        usage_store.save(good)

        path = data_dir / VIEWING_RECORDS_FILE
        document = json.loads(path.read_text())
        bad_duration = dict(document[0], id=str(uuid4()), durationTicks=-5)
        missing_fields = {"id": str(uuid4()), "userId": str(user_id)}
        nil_item = dict(document[0], id=str(uuid4()), itemId="00000000-0000-0000-0000-000000000000")
        path.write_text(json.dumps(document + [bad_duration, missing_fields, nil_item]))

        loaded = _query_around(usage_store, user_id, base_time)

        assert [record.id for record in loaded] == [good.id]

    def test_stored_text_is_resanitized_on_read(self, usage_store, make_usage_record, user_id, data_dir):
        usage_store.save(make_usage_record(user_id=user_id))

        path = data_dir / VIEWING_RECORDS_FILE
        document = json.loads(path.read_text())
        document[0]["itemName"] = "<script>Movie-A"
        path.write_text(json.dumps(document))

        [record] = usage_store.all_records()
        assert record.item_name == ">Movie-A"

    def test_corrupt_entries_survive_rewrite(self, usage_store, make_usage_record, data_dir):
        usage_store.save(make_usage_record())
        path = data_dir / VIEWING_RECORDS_FILE
        document = json.loads(path.read_text())
        corrupt = {"id": str(uuid4()), "durationTicks": "garbage"}
        path.write_text(json.dumps(document + [corrupt]))

        usage_store.save(make_usage_record())

        rewritten = json.loads(path.read_text())
        assert corrupt in rewritten
        assert len(rewritten) == 3
        assert len(usage_store.all_records()) == 2

    def test_concurrent_saves(self, usage_store, make_usage_record):
        """Fifty threads saving distinct records lose nothing."""
        records = [make_usage_record() for _ in range(50)]
        barrier = threading.Barrier(len(records))
        errors: list[Exception] = []

        def save(record):
            barrier.wait()
            try:
                usage_store.save(record)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=save, args=(record,)) for record in records]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        stored = usage_store.all_records()
        assert len(stored) == 50
        assert {record.id for record in stored} == {record.id for record in records}


class TestInvoiceStore:
    """Tests for InvoiceStore."""

    def test_round_trip(self, invoice_store, make_invoice, user_id):
        invoice = make_invoice(user_id=user_id, lines=[("0.75", "4.00"), ("1.50", "4.00")])
        invoice_store.save(invoice)

        [loaded] = invoice_store.get_for_user(user_id)

        assert loaded == invoice
        assert loaded.created_at == invoice.created_at
        assert loaded.total_amount == Decimal("9.0000")

    def test_decimals_persisted_as_strings(self, invoice_store, make_invoice, data_dir):
        invoice_store.save(make_invoice(lines=[("0.75", "4.00")]))

        document = json.loads((data_dir / INVOICES_FILE).read_text())
        line = document[0]["lineItems"][0]
        assert line["quantity"] == "0.75"
        assert line["unitPrice"] == "4.00"
        assert document[0]["currencyCode"] == "USD"

    def test_get(self, invoice_store, make_invoice):
        invoice = make_invoice()
        invoice_store.save(make_invoice())
        invoice_store.save(invoice)

        assert invoice_store.get(invoice.id) == invoice

    def test_get_unknown_is_none(self, invoice_store, make_invoice):
        invoice_store.save(make_invoice())
        assert invoice_store.get(uuid4()) is None

    def test_get_rejects_bad_id(self, invoice_store):
        with pytest.raises(InvalidFormatError):
            invoice_store.get("nope")

    def test_delete(self, invoice_store, make_invoice, user_id):
        keep = make_invoice(user_id=user_id)
        remove = make_invoice(user_id=user_id)
        invoice_store.save(keep)
        invoice_store.save(remove)

        assert invoice_store.delete(remove.id) is True
        assert invoice_store.get(remove.id) is None
        assert invoice_store.get_for_user(user_id) == [keep]

    def test_delete_unknown_returns_false(self, invoice_store, make_invoice):
        invoice_store.save(make_invoice())
        assert invoice_store.delete(uuid4()) is False
        assert len(invoice_store.all_invoices()) == 1

    def test_invalid_invoice_skipped(self, invoice_store, make_invoice, user_id, data_dir):
        invoice_store.save(make_invoice(user_id=user_id))
        path = data_dir / INVOICES_FILE
        document = json.loads(path.read_text())
        bad = dict(document[0], id=str(uuid4()), currencyCode="XX1")
        path.write_text(json.dumps(document + [bad]))

        assert len(invoice_store.get_for_user(user_id)) == 1
        assert invoice_store.get(bad["id"]) is None


class TestDataStore:
    """Tests for DataStore wiring."""

    def test_creates_directory(self, data_store, data_dir):
        assert data_dir.is_dir()
        assert data_store.directory == data_dir.resolve()

    def test_collections_use_separate_files(
        self, data_store, make_usage_record, make_invoice, data_dir
    ):
        data_store.usage_records.save(make_usage_record())
        data_store.invoices.save(make_invoice())

        assert len(json.loads((data_dir / VIEWING_RECORDS_FILE).read_text())) == 1
        assert len(json.loads((data_dir / INVOICES_FILE).read_text())) == 1
