"""
Observability module - Logging and Metrics.
"""

from playback_billing.observability.logging import get_logger, log_context, setup_logging
from playback_billing.observability.metrics import metrics

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
]
