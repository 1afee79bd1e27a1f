"""
API Routes - FastAPI endpoints for invoices and playback webhooks.

Handlers are plain (sync) functions: storage is blocking file I/O, so
FastAPI runs them on its worker threadpool.
"""

import os
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Response, status

from playback_billing.api.dependencies import (
    get_app_settings,
    get_data_store,
    get_event_source,
    get_invoice_generator,
    require_api_key,
)
from playback_billing.config import Settings
from playback_billing.db.stores import DataStore
from playback_billing.exceptions import ConcurrencyError, StorageIOError, ValidationError
from playback_billing.models.api import (
    DateRangeRequest,
    HealthResponse,
    InvoiceResponse,
    PlaybackAcceptedResponse,
    PlaybackStartRequest,
    PlaybackStopRequest,
)
from playback_billing.models.domain import PlaybackStartEvent, PlaybackStopEvent
from playback_billing.observability import get_logger
from playback_billing.services.event_source import InProcessEventSource
from playback_billing.services.invoice_generator import InvoiceGenerator
from playback_billing.validation import validate_timestamp

logger = get_logger(__name__)

MAX_INVOICE_RANGE = timedelta(days=365)

router = APIRouter()
api_router = APIRouter(prefix="/v1", dependencies=[Depends(require_api_key)])


def _bad_request(exc: ValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _internal_error(exc: Exception, operation: str) -> HTTPException:
    """Log the failure and hide its detail from the caller."""
    logger.error("invoice_operation_failed", operation=operation, error=str(exc), exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal error",
    )


# ============================================================================
# Invoices
# ============================================================================


@api_router.get("/invoices/user/{user_id}", response_model=list[InvoiceResponse])
def list_user_invoices(
    user_id: str,
    generator: InvoiceGenerator = Depends(get_invoice_generator),
) -> list[InvoiceResponse]:
    """All stored invoices for a user."""
    try:
        invoices = generator.get_user_invoices(user_id)
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    except (StorageIOError, ConcurrencyError) as exc:
        raise _internal_error(exc, "list_user_invoices") from exc

    return [InvoiceResponse.from_domain(invoice) for invoice in invoices]


@api_router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: str,
    generator: InvoiceGenerator = Depends(get_invoice_generator),
) -> InvoiceResponse:
    try:
        invoice = generator.get_invoice(invoice_id)
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    except (StorageIOError, ConcurrencyError) as exc:
        raise _internal_error(exc, "get_invoice") from exc

    if invoice is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return InvoiceResponse.from_domain(invoice)


@api_router.post(
    "/invoices/generate/{user_id}",
    response_model=InvoiceResponse,
    responses={204: {"description": "No usage in the current period"}},
)
def generate_current_period_invoice(
    user_id: str,
    generator: InvoiceGenerator = Depends(get_invoice_generator),
) -> InvoiceResponse | Response:
    """Invoice the configured billing period ending now."""
    try:
        invoice = generator.generate_current_period_invoice(user_id)
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    except (StorageIOError, ConcurrencyError) as exc:
        raise _internal_error(exc, "generate_current_period_invoice") from exc

    if invoice is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return InvoiceResponse.from_domain(invoice)


@api_router.post(
    "/invoices/generate/{user_id}/range",
    response_model=InvoiceResponse,
    responses={204: {"description": "No usage in the requested range"}},
)
def generate_range_invoice(
    user_id: str,
    request: DateRangeRequest,
    generator: InvoiceGenerator = Depends(get_invoice_generator),
) -> InvoiceResponse | Response:
    """Invoice an explicit date range of at most one year."""
    try:
        start = validate_timestamp(request.start_date, "startDate")
        end = validate_timestamp(request.end_date, "endDate")
    except ValidationError as exc:
        raise _bad_request(exc) from exc

    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="endDate must be after startDate",
        )
    if end - start > MAX_INVOICE_RANGE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Date range cannot exceed 365 days",
        )

    try:
        invoice = generator.generate_invoice(user_id, start, end)
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    except (StorageIOError, ConcurrencyError) as exc:
        raise _internal_error(exc, "generate_range_invoice") from exc

    if invoice is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return InvoiceResponse.from_domain(invoice)


@api_router.delete("/invoices/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: str,
    generator: InvoiceGenerator = Depends(get_invoice_generator),
) -> Response:
    try:
        deleted = generator.delete_invoice(invoice_id)
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    except (StorageIOError, ConcurrencyError) as exc:
        raise _internal_error(exc, "delete_invoice") from exc

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Playback webhooks
# ============================================================================


@api_router.post(
    "/playback/start",
    response_model=PlaybackAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def playback_started(
    request: PlaybackStartRequest,
    source: InProcessEventSource = Depends(get_event_source),
) -> PlaybackAcceptedResponse:
    """Forward a playback-started notification to the tracker."""
    source.publish_start(
        PlaybackStartEvent(
            session_token=request.session_token,
            user_id=request.user_id,
            item_id=request.item_id,
            item_name=request.item_name,
            item_type_hint=request.item_type,
        )
    )
    return PlaybackAcceptedResponse()


@api_router.post(
    "/playback/stop",
    response_model=PlaybackAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def playback_stopped(
    request: PlaybackStopRequest,
    source: InProcessEventSource = Depends(get_event_source),
) -> PlaybackAcceptedResponse:
    """Forward a playback-stopped notification to the tracker."""
    source.publish_stop(
        PlaybackStopEvent(
            session_token=request.session_token,
            position_ticks=request.position_ticks,
        )
    )
    return PlaybackAcceptedResponse()


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=HealthResponse)
def health_check(
    settings: Settings = Depends(get_app_settings),
    data_store: DataStore = Depends(get_data_store),
) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies the data directory is still present and writable.
    """
    storage_ok = data_store.directory.is_dir() and os.access(data_store.directory, os.W_OK)
    response = HealthResponse(
        status="healthy" if storage_ok else "unhealthy",
        storage="available" if storage_ok else "unavailable",
        tracking_enabled=settings.tracking_enabled,
        timestamp=datetime.now(UTC).isoformat(),
    )
    if not storage_ok:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=response.model_dump(by_alias=True),
        )
    return response


router.include_router(api_router)
