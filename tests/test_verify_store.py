"""
Tests for scripts/verify-store.py.

The script file name is not importable as a module name, so it is loaded
from its path.
"""

import importlib.util
import json
import sys
from pathlib import Path
from uuid import uuid4

import pytest

SCRIPT_PATH = Path(__file__).resolve().parent.parent / "scripts" / "verify-store.py"


@pytest.fixture(scope="module")
def verify_store():
    spec = importlib.util.spec_from_file_location("verify_store", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestVerifyCollection:
    """Tests for verify_collection / verify_store."""

    def test_empty_directory_is_ok(self, verify_store, tmp_path):
        reports = verify_store.verify_store(tmp_path)
        assert all(report.ok for report in reports)
        assert [report.valid for report in reports] == [0, 0]

    def test_counts_valid_and_corrupt(
        self, verify_store, data_store, make_usage_record, make_invoice, data_dir
    ):
        data_store.usage_records.save(make_usage_record())
        data_store.usage_records.save(make_usage_record())
        data_store.invoices.save(make_invoice())

        path = data_dir / "viewing_records.json"
        document = json.loads(path.read_text())
        document.append({"id": str(uuid4()), "durationTicks": -1})
        document.append("not an object")
        path.write_text(json.dumps(document))

        records, invoices = verify_store.verify_store(data_dir)

        assert (records.valid, records.corrupt) == (2, 2)
        assert not records.ok
        assert (invoices.valid, invoices.corrupt) == (1, 0)
        assert invoices.ok

    def test_unparsable_document(self, verify_store, tmp_path):
        (tmp_path / "invoices.json").write_text("{broken")

        _, invoices = verify_store.verify_store(tmp_path)

        assert invoices.unparsable
        assert not invoices.ok


class TestMain:
    """Tests for the command-line entry point."""

    def test_exit_zero_when_clean(self, verify_store, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["verify-store.py", "--data-dir", str(tmp_path)])
        with pytest.raises(SystemExit) as exc_info:
            verify_store.main()
        assert exc_info.value.code == 0

    def test_exit_one_when_corrupt(self, verify_store, tmp_path, monkeypatch):
        (tmp_path / "viewing_records.json").write_text(json.dumps([{"id": "x"}]))
        monkeypatch.setattr(sys, "argv", ["verify-store.py", "--data-dir", str(tmp_path)])
        with pytest.raises(SystemExit) as exc_info:
            verify_store.main()
        assert exc_info.value.code == 1

    def test_exit_one_when_directory_missing(self, verify_store, tmp_path, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["verify-store.py", "--data-dir", str(tmp_path / "missing")])
        with pytest.raises(SystemExit) as exc_info:
            verify_store.main()
        assert exc_info.value.code == 1
