"""
Prometheus metrics for the record store

Counts store operations by outcome, times them, tracks corrupt reads and the
number of rows waiting for upload. Metrics live in a private registry so an
embedding application decides whether and how to expose them.
"""
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# STORE OPERATION METRICS
# =======================

# status: success, noop, not_found, write_failed, identity_error
store_operations_total = Counter(
    name="recordstore_operations_total",
    documentation="Total number of record store operations by outcome",
    labelnames=["operation", "status"],
    registry=REGISTRY,
)

store_operation_duration_seconds = Histogram(
    name="recordstore_operation_duration_seconds",
    documentation="Time spent inside record store transactions in seconds",
    labelnames=["operation"],
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
    registry=REGISTRY,
)

# =======================
# DATA INTEGRITY METRICS
# =======================

# kind: body, constants, enum_token
corrupt_reads_total = Counter(
    name="recordstore_corrupt_reads_total",
    documentation="Rows read back with corrupt or unrecognized content",
    labelnames=["kind"],
    registry=REGISTRY,
)

stored_records = Gauge(
    name="recordstore_records",
    documentation="Number of records currently held in the store",
    labelnames=["store"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


class track_duration:
    """
    Context manager for tracking operation duration

    Usage:
        with track_duration(store_operation_duration_seconds, operation="add"):
            # do work
            pass
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        self.timer = self.histogram.labels(**self.labels).time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    counter.labels(**labels).inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    gauge.labels(**labels).set(value)


def record_operation(operation: str, status: str) -> None:
    """Count one store operation outcome."""
    increment_counter(store_operations_total, 1, operation=operation, status=status)


def record_corrupt_read(kind: str) -> None:
    increment_counter(corrupt_reads_total, 1, kind=kind)
