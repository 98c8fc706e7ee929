"""
HTTP endpoints for health checks and metrics.

Provides:
- /health: liveness probe
- /ready: tool installed and signed in
- /metrics: Prometheus-format metrics
"""

from akv_gateway.http.health import create_ready_check, get_health_routes, health_check
from akv_gateway.http.metrics import (
    MetricsCollector,
    create_metrics_endpoint,
    get_metrics_routes,
)

__all__ = [
    "get_health_routes",
    "health_check",
    "create_ready_check",
    "get_metrics_routes",
    "create_metrics_endpoint",
    "MetricsCollector",
]
