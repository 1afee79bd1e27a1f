"""
API Models - Pydantic models for request/response validation.

Field names are camelCase on the wire, matching the persisted documents.
Playback webhook bodies are deliberately permissive: the session tracker
validates every field itself and drops what it cannot use.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from playback_billing.models.domain import Invoice, LineItem


class CamelModel(BaseModel):
    """camelCase aliases; snake_case names accepted on input too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Invoice Models
# ============================================================================


class DateRangeRequest(CamelModel):
    """POST /v1/invoices/generate/{user_id}/range request body."""

    start_date: datetime
    end_date: datetime


class LineItemResponse(CamelModel):
    """One invoice line."""

    viewing_record_id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal

    @classmethod
    def from_domain(cls, item: LineItem) -> "LineItemResponse":
        return cls(
            viewing_record_id=item.viewing_record_id,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            amount=item.amount,
        )


class InvoiceResponse(CamelModel):
    """Invoice with its line items and derived total."""

    id: UUID
    user_id: UUID
    period_start: datetime
    period_end: datetime
    currency_code: str
    created_at: datetime
    line_items: list[LineItemResponse]
    total_amount: Decimal

    @classmethod
    def from_domain(cls, invoice: Invoice) -> "InvoiceResponse":
        return cls(
            id=invoice.id,
            user_id=invoice.user_id,
            period_start=invoice.period_start,
            period_end=invoice.period_end,
            currency_code=invoice.currency_code,
            created_at=invoice.created_at,
            line_items=[LineItemResponse.from_domain(item) for item in invoice.line_items],
            total_amount=invoice.total_amount,
        )


# ============================================================================
# Playback Webhook Models
# ============================================================================


class PlaybackStartRequest(CamelModel):
    """POST /v1/playback/start request body."""

    session_token: str | None = None
    user_id: str | None = None
    item_id: str | None = None
    item_name: str | None = None
    item_type: str | None = None


class PlaybackStopRequest(CamelModel):
    """POST /v1/playback/stop request body."""

    session_token: str | None = None
    position_ticks: int | None = None


class PlaybackAcceptedResponse(CamelModel):
    """Playback webhooks are acknowledged before the tracker acts on them."""

    status: Literal["accepted"] = "accepted"


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(CamelModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    storage: Literal["available", "unavailable"]
    tracking_enabled: bool
    timestamp: str
