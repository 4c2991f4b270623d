"""Structured logging and Prometheus metrics for session management."""

from sessionward.monitoring.logging import get_logger, setup_structured_logging
from sessionward.monitoring.metrics import session_metrics

__all__ = [
    'get_logger',
    'setup_structured_logging',
    'session_metrics',
]
