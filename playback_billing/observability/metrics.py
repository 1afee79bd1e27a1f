"""
Metrics Collection with Prometheus.

Exposes playback tracking, invoicing and storage metrics for monitoring.
"""

from enum import StrEnum

from prometheus_client import Counter, Gauge, Histogram


class MetricLabels(StrEnum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    EVENT = "event"
    OUTCOME = "outcome"
    REASON = "reason"
    COLLECTION = "collection"


class BillingMetrics:
    """
    Centralized metrics for the playback billing service.

    Covers:
    - HTTP requests (rate, duration)
    - Playback events and the sessions they open or drop
    - Usage records and invoices produced
    - Storage failures and corrupt entries skipped on read
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "playback_billing_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "playback_billing_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # ====================================================================
        # Tracking Metrics
        # ====================================================================
        self.playback_events_total = Counter(
            "playback_billing_playback_events_total",
            "Playback events received by the session tracker",
            [MetricLabels.EVENT, MetricLabels.OUTCOME],
        )

        self.open_playback_sessions = Gauge(
            "playback_billing_open_playback_sessions",
            "Sessions started but not yet stopped",
        )

        self.sessions_dropped_total = Counter(
            "playback_billing_sessions_dropped_total",
            "Playback sessions discarded without producing a usage record",
            [MetricLabels.REASON],
        )

        self.usage_records_saved_total = Counter(
            "playback_billing_usage_records_saved_total",
            "Usage records persisted",
        )

        # ====================================================================
        # Invoice Metrics
        # ====================================================================
        self.invoices_generated_total = Counter(
            "playback_billing_invoices_generated_total",
            "Invoice generation requests by outcome",
            [MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Storage Metrics
        # ====================================================================
        self.storage_write_failures_total = Counter(
            "playback_billing_storage_write_failures_total",
            "Failed collection writes",
            [MetricLabels.COLLECTION],
        )

        self.corrupt_entries_skipped_total = Counter(
            "playback_billing_corrupt_entries_skipped_total",
            "Stored entries that failed re-validation on read",
            [MetricLabels.COLLECTION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_playback_event(self, event: str, outcome: str) -> None:
        """Record a playback start/stop event and what became of it."""
        self.playback_events_total.labels(event=event, outcome=outcome).inc()

    def record_session_dropped(self, reason: str) -> None:
        """Record a session discarded without a usage record."""
        self.sessions_dropped_total.labels(reason=reason).inc()


# Global metrics instance
metrics = BillingMetrics()
