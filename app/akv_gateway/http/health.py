"""
Health and readiness endpoints.

/health answers as long as the process is up. /ready runs the adapter's
readiness check, so it reports 503 until the tool is installed and
signed in.
"""

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from akv_gateway import __version__
from akv_gateway.executor.platform import UnifiedCliAdapter


async def health_check(request: Request) -> JSONResponse:
    """
    Liveness probe endpoint.

    Returns:
        JSON response with health status
    """
    return JSONResponse(
        {
            "status": "healthy",
            "version": __version__,
            "service": "akv_gateway",
        }
    )


def create_ready_check(adapter: UnifiedCliAdapter):
    """Build the /ready handler for an adapter."""

    async def ready_check(request: Request) -> JSONResponse:
        check = await adapter.check_readiness()
        is_ready = check.available and check.authenticated
        return JSONResponse(
            {
                "status": "ready" if is_ready else "not_ready",
                "checks": {
                    "tool_available": check.available,
                    "authenticated": check.authenticated,
                },
                "message": check.message,
                "version": check.version,
                "running_commands": adapter.running_commands_count,
            },
            status_code=200 if is_ready else 503,
        )

    return ready_check


def get_health_routes(adapter: UnifiedCliAdapter) -> list[Route]:
    """
    Get health check routes.

    Returns:
        List of Starlette Route objects
    """
    return [
        Route("/health", health_check, methods=["GET"]),
        Route("/ready", create_ready_check(adapter), methods=["GET"]),
    ]
