"""Prometheus metrics for the application."""

from prometheus_client import Counter, Info, generate_latest
from starlette.responses import Response

APP_INFO = Info("app", "Competitive visibility tracker info")
APP_INFO.info({"version": "1.0.0", "name": "visibility_tracker"})

ANALYSIS_UNITS = Counter(
    "analysis_units_total",
    "Prompt analysis units by provider and outcome",
    ["provider", "status"],
)

ANALYSIS_BATCHES = Counter(
    "analysis_batches_total",
    "Analysis batch runs",
    ["status"],
)

PROVIDER_HEALTH_CHECKS = Counter(
    "provider_health_checks_total",
    "Provider health probes by outcome",
    ["status"],
)

VISIBILITY_RECALCULATIONS = Counter(
    "visibility_recalculations_total",
    "Competitive stat recalculation runs",
    ["status"],
)


def metrics_response() -> Response:
    """Generate Prometheus /metrics response."""
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
