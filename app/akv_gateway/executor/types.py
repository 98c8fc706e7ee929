"""
Type definitions for command execution.

This module defines the data structures used throughout the executor.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Mapping, Optional

from akv_gateway.executor.parser import split_command

# Exit code reported when no process ran to completion
FAILURE_EXIT_CODE = -1


class CommandStatus(str, Enum):
    """Terminal outcome of a command."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"  # Gate 1: rejected by the validator
    AUTHORIZATION_ERROR = "authorization_error"  # Gate 2: not on the allow-list
    CONCURRENCY_LIMIT = "concurrency_limit"  # Gate 3: no admission slot
    TOOL_NOT_FOUND = "tool_not_found"
    EXECUTION_ERROR = "execution_error"  # Process could not be spawned or read
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    CANCELLED = "cancelled"
    UNSUPPORTED = "unsupported"  # Execution disallowed on this platform

    @property
    def is_security_rejection(self) -> bool:
        """Whether this outcome came from validation or the allow-list."""
        return self in (CommandStatus.VALIDATION_ERROR, CommandStatus.AUTHORIZATION_ERROR)


@dataclass(frozen=True)
class CommandRequest:
    """
    A command to run plus its per-call overrides.

    Attributes:
        command: Command string, starting with the tool name
        environment: Extra environment variables layered over the inherited ones
        working_directory: Directory to run the process in
        timeout: Timeout override in seconds
    """

    command: str
    environment: Optional[Mapping[str, str]] = None
    working_directory: Optional[str] = None
    timeout: Optional[float] = None

    @property
    def args(self) -> list[str]:
        """Argument vector for the process (quote-aware)."""
        return split_command(self.command)


@dataclass
class ExecutionResult:
    """
    Result of a command, whether it ran or not.

    Attributes:
        succeeded: True only when the process exited with code 0
        output: Standard output with sensitive values redacted
        error: Standard error as produced by the tool, or the gateway's message
        exit_code: Process exit code, FAILURE_EXIT_CODE when none is available
        elapsed: Wall-clock time spent in the gateway
        status: Outcome category
        command: The command as submitted
    """

    succeeded: bool
    output: str
    error: str
    exit_code: int
    elapsed: timedelta
    status: CommandStatus
    command: str = ""

    @classmethod
    def failure(
        cls,
        status: CommandStatus,
        message: str,
        command: str = "",
        elapsed: timedelta = timedelta(0),
    ) -> "ExecutionResult":
        """Create a result for a command that did not run to completion."""
        return cls(
            succeeded=False,
            output="",
            error=message,
            exit_code=FAILURE_EXIT_CODE,
            elapsed=elapsed,
            status=status,
            command=command,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "succeeded": self.succeeded,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "exit_code": self.exit_code,
            "execution_time_ms": int(self.elapsed.total_seconds() * 1000),
            "command": self.command,
        }


@dataclass
class ValidationResult:
    """
    Result of security validation.

    Attributes:
        allowed: Whether the command is allowed
        reason: Explanation of why command was blocked (if not allowed)
        rule: The specific rule that blocked the command
    """

    allowed: bool
    reason: Optional[str] = None
    rule: Optional[str] = None

    @classmethod
    def allow(cls) -> "ValidationResult":
        """Create an allowing result."""
        return cls(allowed=True)

    @classmethod
    def block(cls, reason: str, rule: Optional[str] = None) -> "ValidationResult":
        """Create a blocking result."""
        return cls(allowed=False, reason=reason, rule=rule)


@dataclass
class ToolCheckResult:
    """Result of checking whether the tool is installed and signed in."""

    available: bool
    message: str
    authenticated: bool = False
    version: Optional[str] = None
    details: dict[str, str] = field(default_factory=dict)


class ExecutorError(Exception):
    """Base exception for executor errors."""

    pass


class InvalidParameterError(ExecutorError, ValueError):
    """Raised by command builders when a structured parameter is malformed."""

    def __init__(self, field_name: str, reason: str):
        super().__init__(f"Invalid {field_name}: {reason}")
        self.field_name = field_name
        self.reason = reason
