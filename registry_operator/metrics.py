"""
Prometheus metrics for the operator, served from the kopf startup hook.
"""
import logging

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger("model-registry-operator")

RECONCILE_TOTAL = Counter(
    "model_registry_reconcile_total",
    "Reconcile attempts by outcome",
    ["outcome"],
)
RECONCILE_DURATION = Histogram(
    "model_registry_reconcile_duration_seconds",
    "Duration of reconcile attempts",
)
RESOURCE_OPERATIONS = Counter(
    "model_registry_resource_operations_total",
    "Create-or-update results for managed resources",
    ["kind", "result"],
)

_server_started = False


def start_metrics_server(port: int):
    global _server_started
    if _server_started or not port:
        return
    start_http_server(port)
    _server_started = True
    logger.info(f"Metrics server listening on :{port}")


def record_reconcile(outcome: str, seconds: float):
    RECONCILE_TOTAL.labels(outcome=outcome).inc()
    RECONCILE_DURATION.observe(seconds)


def record_operation(kind: str, result: str):
    RESOURCE_OPERATIONS.labels(kind=kind, result=result).inc()
