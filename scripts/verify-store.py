#!/usr/bin/env python3
"""
Playback Billing Store Verification

Loads viewing_records.json and invoices.json from a data directory,
re-validates every entry the same way the service does on read, and reports
how many entries are valid and how many are corrupt.

Exits 1 when any corrupt entry (or an unparsable document) is found, so it
can gate backups or run from cron.

Usage:
    # Verify the default data directory
    python3 verify-store.py

    # Verify a specific directory with per-entry details
    python3 verify-store.py --data-dir /var/lib/playback-billing --verbose
"""

import argparse
import json
import logging
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from playback_billing.db.records import StoredInvoice, StoredUsageRecord
from playback_billing.exceptions import ValidationError

COLLECTIONS: list[tuple[str, Callable[[dict[str, Any]], Any]]] = [
    ("viewing_records.json", lambda item: StoredUsageRecord.model_validate(item).to_domain()),
    ("invoices.json", lambda item: StoredInvoice.model_validate(item).to_domain()),
]

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@dataclass
class CollectionReport:
    """Verification result for one collection file."""

    name: str
    valid: int = 0
    corrupt: int = 0
    unparsable: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.unparsable and self.corrupt == 0


def verify_collection(path: Path, convert: Callable[[dict[str, Any]], Any]) -> CollectionReport:
    """Re-validate every entry of one collection file."""
    report = CollectionReport(name=path.name)
    if not path.exists():
        logger.info(f"{path.name}: not present, nothing to verify")
        return report

    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except ValueError as e:
        report.unparsable = True
        report.errors.append(f"document is not valid JSON: {e}")
        return report

    if not isinstance(document, list):
        report.unparsable = True
        report.errors.append(f"expected a JSON array, got {type(document).__name__}")
        return report

    for index, item in enumerate(document):
        if not isinstance(item, dict):
            report.corrupt += 1
            report.errors.append(f"entry {index}: not an object")
            continue
        try:
            convert(item)
        except (PydanticValidationError, ValidationError) as e:
            report.corrupt += 1
            report.errors.append(f"entry {index} (id={item.get('id')}): {e}")
        else:
            report.valid += 1

    return report


def verify_store(data_dir: Path) -> list[CollectionReport]:
    """Verify both collections under a data directory."""
    return [verify_collection(data_dir / file_name, convert) for file_name, convert in COLLECTIONS]


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Verify playback billing JSON collections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Verify the configured data directory
  python3 verify-store.py

  # Verify a copy of production data, listing every corrupt entry
  python3 verify-store.py --data-dir ./backup --verbose
        """,
    )
    parser.add_argument(
        "--data-dir",
        default=os.getenv("DATA_DIR", "./data"),
        help="Directory holding the collection files (default: $DATA_DIR or ./data)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    data_dir = Path(args.data_dir)
    if not data_dir.is_dir():
        logger.error(f"Data directory not found: {data_dir}")
        sys.exit(1)

    reports = verify_store(data_dir)
    for report in reports:
        if report.unparsable:
            logger.error(f"{report.name}: UNPARSABLE ({report.errors[0]})")
        else:
            logger.info(f"{report.name}: {report.valid} valid, {report.corrupt} corrupt")
        for error in report.errors:
            logger.debug(f"  {error}")

    sys.exit(0 if all(report.ok for report in reports) else 1)


if __name__ == "__main__":
    main()
