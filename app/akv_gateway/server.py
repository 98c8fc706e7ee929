"""
FastMCP Server Setup.

This module creates and configures the MCP server instance around a
UnifiedCliAdapter.
"""

import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from fastmcp import Context, FastMCP

from akv_gateway import __version__
from akv_gateway.config import GatewayConfig
from akv_gateway.executor.platform import UnifiedCliAdapter
from akv_gateway.http.health import create_ready_check, health_check
from akv_gateway.http.metrics import MetricsCollector, create_metrics_endpoint
from akv_gateway.utils.logging import LogBuffer, get_logger

logger = get_logger(__name__)

# Entries returned by akv_status
STATUS_LOG_ENTRIES = 20


@dataclass
class ServerBundle:
    """Bundle containing server and related components."""

    server: FastMCP
    adapter: UnifiedCliAdapter
    metrics: MetricsCollector
    log_buffer: Optional[LogBuffer]


async def execute_command(
    adapter: UnifiedCliAdapter,
    metrics: MetricsCollector,
    command: str,
    timeout: Optional[float] = None,
) -> dict[str, Any]:
    """Run one command through the adapter and count its outcome."""
    result = await adapter.execute(command, timeout=timeout)
    metrics.record(result)
    return result.to_dict()


async def gateway_status(
    adapter: UnifiedCliAdapter,
    log_buffer: Optional[LogBuffer],
    log_entries: int = STATUS_LOG_ENTRIES,
) -> dict[str, Any]:
    """Readiness, in-flight count and the most recent log entries."""
    check = await adapter.check_readiness()
    entries = log_buffer.entries()[-log_entries:] if log_buffer and log_entries > 0 else []
    return {
        "available": check.available,
        "authenticated": check.authenticated,
        "version": check.version,
        "message": check.message,
        "status": check.details.get("status"),
        "running_commands": adapter.running_commands_count,
        "recent_logs": [
            {
                "timestamp": entry.timestamp.isoformat(),
                "level": entry.level,
                "message": entry.message,
                "category": entry.category,
            }
            for entry in entries
        ],
    }


def create_server(
    config: GatewayConfig,
    adapter: Optional[UnifiedCliAdapter] = None,
    log_buffer: Optional[LogBuffer] = None,
) -> ServerBundle:
    """
    Create and configure the MCP server.

    Args:
        config: Gateway configuration
        adapter: Pre-built adapter (defaults to one built from config)
        log_buffer: Buffer handler whose entries akv_status reports

    Returns:
        ServerBundle containing the FastMCP instance and its collaborators
    """
    adapter = adapter or UnifiedCliAdapter(config)
    metrics = MetricsCollector(in_flight=lambda: adapter.running_commands_count)

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[dict]:
        """Expose the adapter to tools and stop running commands at shutdown."""
        print(f"AKV Gateway v{__version__} starting...", file=sys.stderr)

        yield {
            "config": config,
            "adapter": adapter,
            "metrics": metrics,
        }

        print("AKV Gateway shutting down...", file=sys.stderr)
        cancelled = adapter.cancel_all()
        if cancelled:
            logger.info("Cancelled %d running command(s) at shutdown", cancelled)

    mcp = FastMCP(
        name="akv_gateway",
        lifespan=lifespan,
    )

    _register_tools(mcp, config, adapter, metrics, log_buffer)
    _register_http_routes(mcp, adapter, metrics)

    return ServerBundle(server=mcp, adapter=adapter, metrics=metrics, log_buffer=log_buffer)


def _register_tools(
    mcp: FastMCP,
    config: GatewayConfig,
    adapter: UnifiedCliAdapter,
    metrics: MetricsCollector,
    log_buffer: Optional[LogBuffer],
) -> None:
    """Register the gateway's MCP tools."""
    tool = config.tool.display_name

    @mcp.tool(
        name="akv_execute",
        annotations={
            "title": f"Run {tool} command",
            "readOnlyHint": False,
            "destructiveHint": True,
        },
    )
    async def akv_execute(command: str, ctx: Context, timeout: Optional[float] = None) -> dict:
        """
        Execute an allow-listed Azure CLI command.

        The command must start with the tool name and match a configured
        allow-list prefix. Shell operators are rejected; quote values that
        contain spaces.

        Returns:
            dict: status, output (sensitive values redacted), error, exit code
        """
        result = await execute_command(adapter, metrics, command, timeout)
        if not result["succeeded"]:
            await ctx.error(f"{result['status']}: {result['error'].strip()}")
        return result

    @mcp.tool(
        name="akv_status",
        annotations={
            "title": f"{tool} status",
            "readOnlyHint": True,
            "destructiveHint": False,
        },
    )
    async def akv_status() -> dict:
        """
        Report whether the tool is installed and signed in.

        Also returns the number of running commands and recent log entries.
        """
        return await gateway_status(adapter, log_buffer)

    @mcp.tool(
        name="akv_ping",
        annotations={
            "title": "Ping",
            "readOnlyHint": True,
            "destructiveHint": False,
        },
    )
    async def akv_ping() -> str:
        """
        Simple ping tool to verify server is responding.

        Returns:
            str: Pong response with server version
        """
        return f"pong from akv_gateway v{__version__}"


def _register_http_routes(
    mcp: FastMCP,
    adapter: UnifiedCliAdapter,
    metrics: MetricsCollector,
) -> None:
    """Register custom HTTP routes for health checks and metrics."""
    mcp.custom_route("/health", methods=["GET"])(health_check)
    mcp.custom_route("/ready", methods=["GET"])(create_ready_check(adapter))
    mcp.custom_route("/metrics", methods=["GET"])(create_metrics_endpoint(metrics))
