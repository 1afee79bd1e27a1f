"""
FastAPI Dependencies - Authentication and service lookup.

Service objects live on app.state, built by the application lifespan.
Tests replace them through app.dependency_overrides.
"""

import secrets

from fastapi import Header, HTTPException, Request, status

from playback_billing.config import Settings
from playback_billing.db.stores import DataStore
from playback_billing.observability import get_logger
from playback_billing.services.event_source import InProcessEventSource
from playback_billing.services.invoice_generator import InvoiceGenerator

logger = get_logger(__name__)


def get_app_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def get_data_store(request: Request) -> DataStore:
    data_store: DataStore = request.app.state.data_store
    return data_store


def get_invoice_generator(request: Request) -> InvoiceGenerator:
    generator: InvoiceGenerator = request.app.state.invoice_generator
    return generator


def get_event_source(request: Request) -> InProcessEventSource:
    source: InProcessEventSource = request.app.state.event_source
    return source


async def require_api_key(
    request: Request,
    x_api_key: str | None = Header(None, alias="X-API-Key"),
) -> None:
    """
    FastAPI dependency guarding every API route.

    When an API key is configured, the X-API-Key header must match it.
    Without a configured key, requests pass and authentication is left to
    whatever sits in front of the service.

    Raises:
        HTTPException 401 if the key is missing or wrong
    """
    expected = get_app_settings(request).api_key
    if not expected:
        return

    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-API-Key header required",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    # SECURITY: constant-time comparison
    if not secrets.compare_digest(x_api_key.encode(), expected.encode()):
        logger.warning("api_key_rejected", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )
