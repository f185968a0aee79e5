"""
Prometheus metrics for runtime operations served over the API.
"""
import logging
from contextlib import contextmanager

from prometheus_client import Counter

logger = logging.getLogger("metrics")

OPERATIONS = None
_metrics_initialized = False


def init_metrics():
    """Register metrics once; recording is a no-op until then."""
    global _metrics_initialized, OPERATIONS
    if _metrics_initialized:
        return
    OPERATIONS = Counter(
        "kube_runtime_operations_total",
        "Runtime operations served over the API",
        ["verb", "kind", "result"],
    )
    _metrics_initialized = True


def record_operation(verb: str, kind: str, result: str = "success"):
    if _metrics_initialized:
        OPERATIONS.labels(verb=verb, kind=kind, result=result).inc()


@contextmanager
def observe(verb: str, kind: str):
    """Count one operation, tagged success or failure."""
    try:
        yield
    except Exception:
        record_operation(verb, kind, "failure")
        raise
    record_operation(verb, kind)
