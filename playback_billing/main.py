"""
Main Application - FastAPI application setup.
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest

from playback_billing.api.routes import router
from playback_billing.config import Settings, get_settings
from playback_billing.db.stores import DataStore
from playback_billing.observability import get_logger, log_context, metrics, setup_logging
from playback_billing.services.event_source import InProcessEventSource
from playback_billing.services.invoice_generator import InvoiceGenerator
from playback_billing.services.session_tracker import SessionTracker

logger = get_logger(__name__)


def create_app(settings: Settings) -> FastAPI:
    """Build the application around one settings object."""
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """
        Application lifespan manager.

        Builds the stores and services on startup. On shutdown the tracker
        unsubscribes and any sessions still open are discarded.
        """
        logger.info(
            "application_starting",
            service=settings.api_title,
            version=settings.api_version,
            tracking_enabled=settings.tracking_enabled,
            rate_policy=settings.rate_policy.value,
            metrics_enabled=settings.metrics_enabled,
        )

        data_store = DataStore(settings)
        event_source = InProcessEventSource()
        tracker = SessionTracker(settings, data_store.usage_records)
        tracker.start(event_source)

        app.state.data_store = data_store
        app.state.invoice_generator = InvoiceGenerator(settings, data_store)
        app.state.event_source = event_source
        app.state.session_tracker = tracker

        yield

        logger.info("application_shutting_down")
        tracker.stop()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        lifespan=lifespan,
    )
    app.state.settings = settings

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Log rejected request bodies without echoing their content."""
        errors = [
            {"type": error.get("type"), "loc": error.get("loc"), "msg": error.get("msg")}
            for error in exc.errors()
        ]
        logger.warning(
            "validation_error",
            path=request.url.path,
            method=request.method,
            errors=errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.middleware("http")
    async def logging_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Log all HTTP requests with timing."""
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID", "unknown")
        endpoint = request.url.path
        method = request.method

        with log_context(request_id=request_id):
            logger.info("request_started", method=method, path=endpoint)

            try:
                response = await call_next(request)
            except Exception as e:
                duration = time.time() - start_time
                if settings.metrics_enabled:
                    metrics.record_http_request(endpoint, method, 500, duration)
                logger.error(
                    "request_failed",
                    method=method,
                    path=endpoint,
                    error=str(e),
                    duration_seconds=duration,
                    exc_info=True,
                )
                raise

            duration = time.time() - start_time
            if settings.metrics_enabled:
                metrics.record_http_request(endpoint, method, response.status_code, duration)
            logger.info(
                "request_completed",
                method=method,
                path=endpoint,
                status_code=response.status_code,
                duration_seconds=duration,
            )
            return response

    app.include_router(router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": settings.api_title,
            "version": settings.api_version,
            "status": "running",
        }

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        """
        Prometheus metrics endpoint.

        Returns metrics in Prometheus text format.
        """
        return PlainTextResponse(generate_latest())

    return app


app = create_app(get_settings())


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "playback_billing.main:app",
        host=_settings.api_host,
        port=_settings.api_port,
        log_level=_settings.log_level.lower(),
    )
