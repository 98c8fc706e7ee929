"""
Pydantic models for gateway configuration.

Everything the gateway decides with (tool name, allow-list, timeout,
concurrency cap) lives here and is passed to components explicitly,
so the decision logic can be exercised against any configuration.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServerSettings(BaseModel):
    """MCP server settings."""

    host: str = Field(
        default="127.0.0.1",
        description="Host to bind the server to",
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port to listen on",
    )
    transport: Literal["streamable-http", "stdio"] = Field(
        default="stdio",
        description="Transport protocol to use",
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level",
    )


class ToolSettings(BaseModel):
    """The external command-line tool the gateway is allowed to run."""

    name: str = Field(
        default="az",
        min_length=1,
        description="Root token every command must start with",
    )
    display_name: str = Field(
        default="Azure CLI",
        description="Human-readable tool name used in messages",
    )
    executable: Optional[str] = Field(
        default=None,
        description="Binary name to resolve on disk (defaults to the tool name)",
    )
    version_command: str = Field(
        default="az --version",
        description="Command used to check availability and read the version",
    )
    version_line_prefix: str = Field(
        default="azure-cli",
        description="Prefix of the version line in the version command output",
    )
    auth_check_command: str = Field(
        default="az account show",
        description="Command that succeeds only when the tool is signed in",
    )
    install_hint: Optional[str] = Field(
        default=None,
        description="Install instructions shown when the tool cannot be found",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Tool name must be a single token."""
        if len(v.split()) != 1:
            raise ValueError("tool.name must be a single word")
        return v


class CommandSettings(BaseModel):
    """Command execution settings."""

    default_timeout: float = Field(
        default=300,
        gt=0,
        le=3600,
        description="Default command timeout in seconds",
    )
    max_concurrent: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum number of commands in flight at once",
    )
    kill_grace: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Seconds to wait for a killed process to exit",
    )


class ResolverSettings(BaseModel):
    """Executable discovery settings."""

    candidate_paths: list[str] = Field(
        default_factory=list,
        description="Absolute paths probed before the platform defaults",
    )
    search_dirs: list[str] = Field(
        default_factory=list,
        description="Directories prepended to PATH before the platform defaults",
    )
    locator_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout in seconds for the which/where fallback",
    )


class SecuritySettings(BaseModel):
    """Security configuration."""

    allowed_commands: list[str] = Field(
        default_factory=list,
        description="Case-insensitive command prefixes the gateway may run",
    )
    log_output_limit: int = Field(
        default=500,
        ge=50,
        description="Characters of output kept in log records",
    )

    @field_validator("allowed_commands")
    @classmethod
    def strip_allowed_commands(cls, v: list[str]) -> list[str]:
        """Normalize whitespace and drop blank entries."""
        return [" ".join(entry.split()) for entry in v if entry and entry.strip()]


class LoggingSettings(BaseModel):
    """Log handler settings."""

    buffer_size: int = Field(
        default=500,
        ge=0,
        description="Number of recent log entries kept in memory (0 disables)",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional file to mirror log output to",
    )


class GatewayConfig(BaseModel):
    """
    Main configuration container for the gateway.

    Configuration is loaded from YAML files and environment variables,
    then passed to components via dependency injection.
    """

    platform: Literal["auto", "macos", "linux", "windows", "sandboxed"] = Field(
        default="auto",
        description="Host platform override; 'auto' detects it",
    )
    server: ServerSettings = Field(default_factory=ServerSettings)
    tool: ToolSettings = Field(default_factory=ToolSettings)
    command: CommandSettings = Field(default_factory=CommandSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def executable_name(self) -> str:
        """Binary name the resolver searches for."""
        return self.tool.executable or self.tool.name

    # Allow extra fields to be ignored (forward compatibility)
    model_config = ConfigDict(extra="ignore")
