"""Prometheus metrics definitions for BucketGate.

Custom metrics use the ``bucketgate_`` prefix. HTTP-level metrics (request
count, duration, sizes) come from ``prometheus-fastapi-instrumentator``;
the counters here track gateway operations and payload bytes.

Counters reset to zero on restart; Prometheus handles the gap via ``rate()``.
"""

from __future__ import annotations

from prometheus_client import Counter

_initialized: bool = False

# Gateway operation counter (labels: operation, status)
s3_operations_total: Counter | None = None

# Payload byte counters
bytes_received_total: Counter | None = None
bytes_sent_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all gateway metrics.

    Called once when metrics are enabled. When disabled, the module-level
    references stay ``None`` and nothing is registered in the global
    registry.
    """
    global _initialized
    global s3_operations_total, bytes_received_total, bytes_sent_total

    if _initialized:
        return

    s3_operations_total = Counter(
        "bucketgate_s3_operations_total",
        "Total gateway operations by type and outcome",
        ["operation", "status"],
    )

    bytes_received_total = Counter(
        "bucketgate_bytes_received_total",
        "Total bytes stored from request bodies",
    )

    bytes_sent_total = Counter(
        "bucketgate_bytes_sent_total",
        "Total object bytes served in response bodies",
    )

    _initialized = True


def record_operation(operation: str, status: str) -> None:
    """Increment the operation counter if metrics are enabled."""
    if s3_operations_total is not None:
        s3_operations_total.labels(operation=operation, status=status).inc()


def record_bytes_received(n: int) -> None:
    if bytes_received_total is not None and n > 0:
        bytes_received_total.inc(n)


def record_bytes_sent(n: int) -> None:
    if bytes_sent_total is not None and n > 0:
        bytes_sent_total.inc(n)
