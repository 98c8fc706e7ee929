"""
Platform selection and the unified adapter.

The host platform is checked once, when the adapter is built, and picks
exactly one gateway: the desktop gateway paired with that OS's resolver,
or the unsupported gateway for sandboxed runtimes (Pyodide, WASI) where
no process can be spawned. Callers only ever see ``UnifiedCliAdapter``.
"""

import asyncio
import sys
from enum import Enum
from typing import Mapping, Optional

from akv_gateway.config.loader import load_default_config
from akv_gateway.config.models import GatewayConfig
from akv_gateway.executor.gateway import BaseGateway, CommandGateway, ProcessFactory, UnsupportedGateway
from akv_gateway.executor.resolver import (
    ExecutableResolver,
    LinuxResolver,
    MacOSResolver,
    WindowsResolver,
)
from akv_gateway.executor.types import CommandStatus, ExecutionResult, ToolCheckResult
from akv_gateway.executor.validator import CommandValidator
from akv_gateway.utils.logging import get_logger

logger = get_logger(__name__)


class HostPlatform(str, Enum):
    """Host environments the gateway distinguishes."""

    MACOS = "macos"
    LINUX = "linux"
    WINDOWS = "windows"
    SANDBOXED = "sandboxed"  # Browser/WebAssembly runtimes


_RESOLVERS: dict[HostPlatform, type[ExecutableResolver]] = {
    HostPlatform.MACOS: MacOSResolver,
    HostPlatform.LINUX: LinuxResolver,
    HostPlatform.WINDOWS: WindowsResolver,
}


def detect_platform(platform_id: Optional[str] = None) -> HostPlatform:
    """
    Map a ``sys.platform`` value to a HostPlatform.

    Unknown POSIX systems (BSDs, Solaris) are treated like Linux.
    """
    platform_id = platform_id or sys.platform

    if platform_id in ("emscripten", "wasi"):
        return HostPlatform.SANDBOXED
    if platform_id == "darwin":
        return HostPlatform.MACOS
    if platform_id in ("win32", "cygwin"):
        return HostPlatform.WINDOWS
    return HostPlatform.LINUX


def create_resolver(config: GatewayConfig, host_platform: HostPlatform) -> ExecutableResolver:
    """Build the resolver for a desktop platform from configuration."""
    resolver_cls = _RESOLVERS[host_platform]
    return resolver_cls(
        executable=config.executable_name,
        candidate_paths=config.resolver.candidate_paths,
        search_dirs=config.resolver.search_dirs,
        locator_timeout=config.resolver.locator_timeout,
        install_hint=config.tool.install_hint,
    )


def create_gateway(
    config: GatewayConfig,
    host_platform: Optional[HostPlatform] = None,
    resolver: Optional[ExecutableResolver] = None,
    process_factory: Optional[ProcessFactory] = None,
) -> BaseGateway:
    """
    Factory function to create the gateway for this host.

    Args:
        config: Gateway configuration
        host_platform: Platform override; defaults to config.platform, then detection
        resolver: Resolver override (tests)
        process_factory: Replacement for asyncio.create_subprocess_exec (tests)

    Returns:
        A configured BaseGateway implementation
    """
    if host_platform is None:
        host_platform = (
            detect_platform() if config.platform == "auto" else HostPlatform(config.platform)
        )

    if host_platform is HostPlatform.SANDBOXED:
        logger.info("Sandboxed environment detected; command execution disabled")
        return UnsupportedGateway(config.tool.display_name)

    validator = CommandValidator(config.tool.name, config.security.allowed_commands)
    if resolver is None:
        resolver = create_resolver(config, host_platform)

    logger.info(
        "Using %s gateway (%d allowed command prefixes)",
        host_platform.value,
        len(validator.allowed_commands),
    )
    return CommandGateway(
        validator=validator,
        resolver=resolver,
        default_timeout=config.command.default_timeout,
        max_concurrent=config.command.max_concurrent,
        kill_grace=config.command.kill_grace,
        tool_display_name=config.tool.display_name,
        log_output_limit=config.security.log_output_limit,
        process_factory=process_factory,
    )


class UnifiedCliAdapter:
    """
    Platform-independent surface over the tool.

    The same methods and the same result type are available whichever
    gateway backs the adapter.
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        gateway: Optional[BaseGateway] = None,
        host_platform: Optional[HostPlatform] = None,
    ):
        """
        Initialize the adapter.

        Args:
            config: Gateway configuration (defaults to the packaged defaults,
                including the default allow-list)
            gateway: Pre-built gateway; skips platform selection
            host_platform: Platform override passed to create_gateway
        """
        self.config = config or load_default_config()
        self.gateway = gateway or create_gateway(self.config, host_platform=host_platform)

    async def execute(
        self,
        command: str,
        environment: Optional[Mapping[str, str]] = None,
        working_directory: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExecutionResult:
        """Execute a command through the platform's gateway."""
        return await self.gateway.execute(
            command,
            environment=environment,
            working_directory=working_directory,
            timeout=timeout,
            cancel_event=cancel_event,
        )

    async def is_available(self) -> bool:
        """Check whether the tool is installed and runs."""
        result = await self.execute(self.config.tool.version_command)
        return result.succeeded

    async def get_version(self) -> Optional[str]:
        """Return the tool's version line, or None if it cannot be read."""
        result = await self.execute(self.config.tool.version_command)
        if not result.succeeded:
            return None
        return parse_version(result.output, self.config.tool.version_line_prefix)

    async def is_authenticated(self) -> bool:
        """Check whether the tool has a signed-in account."""
        result = await self.execute(self.config.tool.auth_check_command)
        return result.succeeded

    async def check_readiness(self) -> ToolCheckResult:
        """
        Check installation, then sign-in.

        A missing tool and a signed-out tool produce different messages and
        ``details["status"]`` values so the caller can offer the right fix.
        """
        tool = self.config.tool.display_name

        version_result = await self.execute(self.config.tool.version_command)
        if not version_result.succeeded:
            logger.warning("%s not found or not working", tool)
            return ToolCheckResult(
                available=False,
                message=version_result.error or f"{tool} is not working",
                details={"status": version_result.status.value},
            )

        version = parse_version(version_result.output, self.config.tool.version_line_prefix)

        auth_result = await self.execute(self.config.tool.auth_check_command)
        if not auth_result.succeeded:
            logger.warning("%s not authenticated", tool)
            return ToolCheckResult(
                available=True,
                authenticated=False,
                message=f"{tool} is not signed in: {auth_result.error.strip()}",
                version=version,
                details={"status": auth_result.status.value},
            )

        return ToolCheckResult(
            available=True,
            authenticated=True,
            message=f"{tool} is ready",
            version=version,
            details={"status": CommandStatus.SUCCESS.value},
        )

    def apply_config(self, config: GatewayConfig) -> None:
        """
        Switch to a reloaded configuration without rebuilding the gateway.

        The allow-list and the limits take effect for the next command;
        commands already admitted keep the timeout they started with.
        The platform and the resolver are not re-selected.
        """
        self.config = config
        gateway = self.gateway
        if not isinstance(gateway, CommandGateway):
            return

        gateway.validator = CommandValidator(config.tool.name, config.security.allowed_commands)
        gateway.default_timeout = config.command.default_timeout
        gateway.max_concurrent = config.command.max_concurrent
        gateway.kill_grace = config.command.kill_grace
        gateway.log_output_limit = config.security.log_output_limit
        logger.info(
            "Configuration applied (%d allowed command prefixes)",
            len(gateway.validator.allowed_commands),
        )

    @property
    def running_commands_count(self) -> int:
        return self.gateway.running_commands_count

    def cancel_all(self) -> int:
        return self.gateway.cancel_all()


def parse_version(output: str, prefix: str) -> Optional[str]:
    """
    Pick the version line out of version command output.

    Falls back to the first non-empty line when no line has the prefix.
    """
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    for line in lines:
        if line.startswith(prefix):
            return " ".join(line.split())
    return lines[0] if lines else None
