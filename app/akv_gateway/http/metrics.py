"""
Prometheus metrics endpoint.

Provides /metrics endpoint in Prometheus exposition format.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Route

from akv_gateway import __version__
from akv_gateway.executor.types import CommandStatus, ExecutionResult

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@dataclass
class MetricsCollector:
    """
    Counters for gateway outcomes.

    ``in_flight`` is read at scrape time, usually from the adapter's
    running_commands_count.
    """

    tool_calls_total: int = 0
    start_time: float = field(default_factory=time.time)
    status_counts: dict[CommandStatus, int] = field(default_factory=dict)
    in_flight: Callable[[], int] = lambda: 0

    def record(self, result: ExecutionResult) -> None:
        """Count one command outcome."""
        self.tool_calls_total += 1
        self.status_counts[result.status] = self.status_counts.get(result.status, 0) + 1

    @property
    def blocked_total(self) -> int:
        return sum(
            count for status, count in self.status_counts.items() if status.is_security_rejection
        )

    def format_prometheus(self) -> str:
        """
        Format metrics in Prometheus exposition format.

        Returns:
            Metrics as text in Prometheus format
        """
        uptime = time.time() - self.start_time

        lines = [
            "# HELP akv_gateway_info Gateway information",
            "# TYPE akv_gateway_info gauge",
            f'akv_gateway_info{{version="{__version__}"}} 1',
            "",
            "# HELP akv_gateway_uptime_seconds Gateway uptime in seconds",
            "# TYPE akv_gateway_uptime_seconds gauge",
            f"akv_gateway_uptime_seconds {uptime:.2f}",
            "",
            "# HELP akv_gateway_commands_total Commands submitted to the gateway",
            "# TYPE akv_gateway_commands_total counter",
            f"akv_gateway_commands_total {self.tool_calls_total}",
            "",
            "# HELP akv_gateway_commands_blocked_total Commands rejected by validation or the allow-list",
            "# TYPE akv_gateway_commands_blocked_total counter",
            f"akv_gateway_commands_blocked_total {self.blocked_total}",
            "",
            "# HELP akv_gateway_commands_in_flight Commands currently running",
            "# TYPE akv_gateway_commands_in_flight gauge",
            f"akv_gateway_commands_in_flight {self.in_flight()}",
        ]

        if self.status_counts:
            lines.extend([
                "",
                "# HELP akv_gateway_commands_by_status Command outcomes by status",
                "# TYPE akv_gateway_commands_by_status counter",
            ])
            for status, count in sorted(self.status_counts.items(), key=lambda item: item[0].value):
                lines.append(f'akv_gateway_commands_by_status{{status="{status.value}"}} {count}')

        return "\n".join(lines) + "\n"


def create_metrics_endpoint(metrics: MetricsCollector):
    """Build the /metrics handler bound to a collector."""

    async def metrics_endpoint(request: Request) -> PlainTextResponse:
        return PlainTextResponse(metrics.format_prometheus(), media_type=CONTENT_TYPE)

    return metrics_endpoint


def get_metrics_routes(metrics: Optional[MetricsCollector] = None) -> list[Route]:
    """
    Get metrics routes.

    Args:
        metrics: Collector to expose (a fresh one if omitted)

    Returns:
        List of Starlette Route objects
    """
    return [
        Route("/metrics", create_metrics_endpoint(metrics or MetricsCollector()), methods=["GET"]),
    ]
