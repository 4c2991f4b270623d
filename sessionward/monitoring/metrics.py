"""
Prometheus metrics for session lifecycle and store monitoring.

Metrics are registered once at import time on the default prometheus_client
registry and shared by every manager and backend in the process.
"""

import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Gauge, Histogram

session_metrics = {
    'session_operations': Counter(
        'sessionward_session_operations_total',
        'Total session operations by type and result',
        ['operation', 'result']
    ),
    'lifecycle_transitions': Counter(
        'sessionward_lifecycle_transitions_total',
        'Session lifecycle transitions evaluated per request',
        ['transition']
    ),
    'backend_latency': Histogram(
        'sessionward_backend_operation_seconds',
        'Store backend operation duration',
        ['backend', 'operation'],
        buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
    ),
    'backend_errors': Counter(
        'sessionward_backend_errors_total',
        'Store backend operation failures',
        ['backend', 'operation']
    ),
    'cleanup_operations': Counter(
        'sessionward_cleanup_total',
        'Sessions removed by cleanup sweeps',
        ['cleanup_type']
    ),
    'registered_namespaces': Gauge(
        'sessionward_registered_namespaces',
        'Lifecycle manager namespaces registered in the process'
    ),
}


def record_operation(operation: str, result: str) -> None:
    session_metrics['session_operations'].labels(operation=operation, result=result).inc()


def record_transition(transition: str) -> None:
    session_metrics['lifecycle_transitions'].labels(transition=transition).inc()


@contextmanager
def track_backend_operation(backend: str, operation: str) -> Iterator[None]:
    """Time a backend call and count it as an error if it raises."""
    start_time = time.perf_counter()
    try:
        yield
    except Exception:
        session_metrics['backend_errors'].labels(backend=backend, operation=operation).inc()
        raise
    finally:
        session_metrics['backend_latency'].labels(backend=backend, operation=operation).observe(
            time.perf_counter() - start_time
        )


__all__ = [
    'session_metrics',
    'record_operation',
    'record_transition',
    'track_backend_operation',
]
