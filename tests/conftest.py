"""
Pytest Configuration and Centralized Fixtures.

Provides reusable fixtures for testing:
- Settings pointing at a per-test data directory
- Data store, stores, invoice generator and session tracker
- Usage record and invoice factories
- API test client (with and without a configured API key)
"""

import os
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Set environment variables BEFORE importing package modules
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("TRACKING_ENABLED", "false")

from playback_billing.config import Settings
from playback_billing.db.stores import DataStore, InvoiceStore, UsageRecordStore
from playback_billing.main import create_app
from playback_billing.models.domain import Invoice, LineItem, MediaItemType, UsageRecord
from playback_billing.services.event_source import InProcessEventSource
from playback_billing.services.invoice_generator import InvoiceGenerator
from playback_billing.services.session_tracker import SessionTracker
from playback_billing.validation import TICKS_PER_SECOND

TEST_API_KEY = "test-api-key-0123456789"


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def base_time() -> datetime:
    """A whole-second instant two days in the past.

    Far enough back that a one-day window around it never reaches into the
    future, which timestamp validation rejects.
    """
    return (datetime.now(UTC) - timedelta(days=2)).replace(microsecond=0)


# ============================================================================
# Settings and Service Fixtures
# ============================================================================


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def test_settings(data_dir: Path) -> Settings:
    """Tracking enabled, hourly billing at 4.00 USD, no API key."""
    return Settings(
        data_dir=str(data_dir),
        tracking_enabled=True,
        currency_code="usd",
        hourly_rate=Decimal("4.00"),
        api_key=None,
    )


@pytest.fixture
def data_store(test_settings: Settings) -> DataStore:
    return DataStore(test_settings)


@pytest.fixture
def usage_store(data_store: DataStore) -> UsageRecordStore:
    return data_store.usage_records


@pytest.fixture
def invoice_store(data_store: DataStore) -> InvoiceStore:
    return data_store.invoices


@pytest.fixture
def invoice_generator(test_settings: Settings, data_store: DataStore) -> InvoiceGenerator:
    return InvoiceGenerator(test_settings, data_store)


@pytest.fixture
def event_source() -> InProcessEventSource:
    return InProcessEventSource()


@pytest.fixture
def tracker(
    test_settings: Settings, usage_store: UsageRecordStore, event_source: InProcessEventSource
) -> Iterator[SessionTracker]:
    """Session tracker subscribed to an in-process event source."""
    session_tracker = SessionTracker(test_settings, usage_store)
    session_tracker.start(event_source)
    yield session_tracker
    session_tracker.stop()


# ============================================================================
# Model Factories
# ============================================================================


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_usage_record(base_time: datetime) -> Callable[..., UsageRecord]:
    """Factory for valid usage records starting at base_time by default."""

    def _create(
        user_id: UUID | None = None,
        minutes: float = 45,
        start_time: datetime | None = None,
        item_name: str = "Movie-A",
        item_type: MediaItemType = MediaItemType.MOVIE,
    ) -> UsageRecord:
        start = start_time or base_time
        duration = timedelta(minutes=minutes)
        return UsageRecord.create(
            user_id=user_id or uuid4(),
            item_id=uuid4(),
            item_name=item_name,
            item_type=item_type,
            start_time=start,
            end_time=start + duration,
            duration_ticks=int(duration.total_seconds() * TICKS_PER_SECOND),
        )

    return _create


@pytest.fixture
def make_invoice(base_time: datetime) -> Callable[..., Invoice]:
    """Factory for invoices with the given (quantity, unit_price) lines."""

    def _create(
        user_id: UUID | None = None,
        lines: list[tuple[str, str]] | None = None,
    ) -> Invoice:
        invoice = Invoice(
            id=uuid4(),
            user_id=user_id or uuid4(),
            period_start=base_time - timedelta(days=1),
            period_end=base_time + timedelta(days=1),
            currency_code="USD",
        )
        for quantity, unit_price in lines or [("0.75", "4.00")]:
            invoice.add_line_item(
                LineItem.create(
                    viewing_record_id=uuid4(),
                    description="Movie: Movie-A",
                    quantity=quantity,
                    unit_price=unit_price,
                )
            )
        return invoice

    return _create


# ============================================================================
# API Client Fixtures
# ============================================================================


@pytest.fixture
def app(test_settings: Settings) -> FastAPI:
    return create_app(test_settings)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    """Test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def test_api_key() -> str:
    return TEST_API_KEY


@pytest.fixture
def secured_client(data_dir: Path, test_api_key: str) -> Iterator[TestClient]:
    """Test client for an application that requires test_api_key."""
    secured_settings = Settings(data_dir=str(data_dir), tracking_enabled=True, api_key=test_api_key)
    with TestClient(create_app(secured_settings)) as test_client:
        yield test_client
