"""
Command execution engine with security validation.

This module handles:
- Command validation and allow-listing
- Executable discovery per platform
- Async subprocess execution under timeout and concurrency limits
- Output sanitization
"""

from akv_gateway.executor.types import (
    FAILURE_EXIT_CODE,
    CommandRequest,
    CommandStatus,
    ExecutionResult,
    ExecutorError,
    InvalidParameterError,
    ToolCheckResult,
    ValidationResult,
)
from akv_gateway.executor.parser import (
    base_command,
    normalize_command,
    split_command,
)
from akv_gateway.executor.validator import (
    CommandValidator,
    create_validator,
    escape_shell_argument,
    is_batch_script,
    is_command_allowed,
    sanitize_command_for_log,
    sanitize_for_log,
    sanitize_output,
    validate_batch_arguments,
    validate_command,
    validate_email,
    validate_json,
    validate_key_vault_name,
    validate_object_name,
    validate_resource_group,
    validate_resource_name,
    validate_secret_name,
    validate_subscription_id,
    validate_url,
)
from akv_gateway.executor.resolver import (
    ExecutableResolver,
    LinuxResolver,
    MacOSResolver,
    WindowsResolver,
)
from akv_gateway.executor.gateway import (
    BaseGateway,
    CommandGateway,
    UnsupportedGateway,
)
from akv_gateway.executor.platform import (
    HostPlatform,
    UnifiedCliAdapter,
    create_gateway,
    detect_platform,
)

__all__ = [
    # Types
    "FAILURE_EXIT_CODE",
    "CommandRequest",
    "CommandStatus",
    "ExecutionResult",
    "ToolCheckResult",
    "ValidationResult",
    # Exceptions
    "ExecutorError",
    "InvalidParameterError",
    # Parser
    "split_command",
    "normalize_command",
    "base_command",
    # Validator
    "CommandValidator",
    "create_validator",
    "validate_command",
    "is_command_allowed",
    "is_batch_script",
    "validate_batch_arguments",
    "validate_resource_name",
    "validate_resource_group",
    "validate_subscription_id",
    "validate_json",
    "validate_email",
    "validate_url",
    "validate_key_vault_name",
    "validate_object_name",
    "validate_secret_name",
    "escape_shell_argument",
    "sanitize_output",
    "sanitize_for_log",
    "sanitize_command_for_log",
    # Resolver
    "ExecutableResolver",
    "MacOSResolver",
    "LinuxResolver",
    "WindowsResolver",
    # Gateway
    "BaseGateway",
    "CommandGateway",
    "UnsupportedGateway",
    # Platform
    "HostPlatform",
    "UnifiedCliAdapter",
    "create_gateway",
    "detect_platform",
]
