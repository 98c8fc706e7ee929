"""
Security validation for CLI commands.

This module holds the gateway's first two gates and the text helpers
that go with them:

1. ``validate_command`` - rejects empty commands, commands for any other
   tool, and commands carrying shell metacharacters or traversal
2. ``CommandValidator`` - runs gate 1 and then the allow-list (gate 2)
   against an injected tool name and list of prefixes

Field validators check structured parameters before a builder turns them
into a command string. ``escape_shell_argument`` embeds a value as one
argument; the ``sanitize_*`` functions redact output and log text.

Everything here is pure: no I/O, no state.
"""

import json
import re
from typing import Iterable, Optional
from urllib.parse import urlsplit

from akv_gateway.executor.parser import (
    base_command,
    exposed_text,
    normalize_command,
    root_token,
)
from akv_gateway.executor.types import ValidationResult

REDACTED = "[REDACTED]"
TRUNCATION_MARKER = "... [truncated]"
DEFAULT_LOG_LIMIT = 500

EMPTY_COMMAND = "Command cannot be empty"
DANGEROUS_COMMAND = "Command contains potentially dangerous characters"

# Checked against the text quoting does not protect
_DANGEROUS_PATTERNS = [
    re.compile(r"[;&|`$(){}\[\]<>]"),  # Shell metacharacters
    re.compile(r"\\"),  # Backslash escapes, including a trailing one
    re.compile(r"--\w[\w-]*=\S*[;&|`$]"),  # Flag value carrying a metacharacter
]

# Checked against the whole command; quoting does not make a path safe
_TRAVERSAL_PATTERN = re.compile(r"\.\.[/\\]")

BATCH_UNSAFE_ARGUMENT = "Argument contains characters that cmd.exe would interpret"

# Checked against each argument when the executable is a batch script
_BATCH_SUFFIXES = (".cmd", ".bat")
_BATCH_UNSAFE_PATTERN = re.compile(r'[&|<>^%!"()\r\n]')

_RESOURCE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_RESOURCE_GROUP_PATTERN = re.compile(r"^[a-zA-Z0-9_().-]+$")
_SUBSCRIPTION_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_KEY_VAULT_NAME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9-]*[a-zA-Z0-9]$")
_OBJECT_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9-]+$")

# "field": "string value" for the field names the tool uses for secrets.
# Field names are case-sensitive; escaped quotes inside the value are skipped.
_SENSITIVE_FIELD_PATTERN = re.compile(
    r'"(value|password|connectionString|key|secret)"(\s*):(\s*)"(?:[^"\\]|\\.)*"'
)

# --flag value / --flag=value, where value is one shell word
_SENSITIVE_FLAG_PATTERN = re.compile(
    r"(--(?:password|secret|key|value))(\s+|=)((?:'[^']*'|\"(?:[^\"\\]|\\.)*\"|[^\s'\"])+)"
)


def validate_command(command: str, tool_name: str = "az") -> Optional[str]:
    """
    Validate a command string before it is allowed anywhere near a process.

    Rules are applied in order and the first failure wins.

    Args:
        command: The raw command string
        tool_name: Root token every command must start with

    Returns:
        None if the command is acceptable, otherwise the rejection reason
    """
    if not command or not command.strip():
        return EMPTY_COMMAND

    if root_token(command) != tool_name:
        return f"Only {tool_name} commands are allowed"

    exposed, balanced = exposed_text(command)
    if not balanced:
        return DANGEROUS_COMMAND

    for pattern in _DANGEROUS_PATTERNS:
        if pattern.search(exposed):
            return DANGEROUS_COMMAND

    if _TRAVERSAL_PATTERN.search(command):
        return DANGEROUS_COMMAND

    return None


def is_command_allowed(command: str, allowed_commands: Iterable[str]) -> bool:
    """
    Check a command against allow-list prefixes.

    Matching is case-insensitive prefix matching on the whitespace-normalized
    command, so "az keyvault list" matches both "az keyvault list" and a
    broader "az keyvault" entry.
    """
    normalized = normalize_command(command)
    return any(
        normalized.startswith(normalize_command(prefix))
        for prefix in allowed_commands
        if prefix.strip()
    )


class CommandValidator:
    """
    Validates commands against the tool name and allow-list.

    The allow-list is injected so the gateway's decisions can be tested
    against any command surface.
    """

    def __init__(self, tool_name: str, allowed_commands: Iterable[str]):
        """
        Initialize validator.

        Args:
            tool_name: Root token every command must start with (e.g. "az")
            allowed_commands: Case-insensitive command prefixes that may run
        """
        self.tool_name = tool_name
        self.allowed_commands = tuple(allowed_commands)

    def validate(self, command: str) -> ValidationResult:
        """
        Run gate 1 (validation) and gate 2 (allow-list).

        Returns:
            ValidationResult with rule "validation" or "allow_list" when blocked
        """
        error = validate_command(command, self.tool_name)
        if error is not None:
            return ValidationResult.block(error, rule="validation")

        if not is_command_allowed(command, self.allowed_commands):
            return ValidationResult.block(
                f"Command not in allowed list: {base_command(command)}",
                rule="allow_list",
            )

        return ValidationResult.allow()


def create_validator(tool_name: str, allowed_commands: Iterable[str]) -> CommandValidator:
    """Factory function to create a CommandValidator."""
    return CommandValidator(tool_name, allowed_commands)


def is_batch_script(path: str) -> bool:
    """Whether Windows will run ``path`` through cmd.exe."""
    return path.lower().endswith(_BATCH_SUFFIXES)


def validate_batch_arguments(args: Iterable[str]) -> Optional[str]:
    """
    Check arguments bound for a ``.cmd``/``.bat`` executable.

    cmd.exe re-parses the command line of a batch script, and the argv
    quoting used by CreateProcess does not protect against it, so any
    argument carrying a cmd metacharacter is rejected.

    Returns:
        None if every argument is safe, otherwise the rejection reason
    """
    for arg in args:
        if _BATCH_UNSAFE_PATTERN.search(arg):
            return BATCH_UNSAFE_ARGUMENT
    return None


# =============================================================================
# Field validators
# =============================================================================


def validate_resource_name(name: str) -> Optional[str]:
    """Validate a generic Azure resource name."""
    if not name:
        return "Resource name cannot be empty"

    if len(name) < 3 or len(name) > 24:
        return "Resource name must be between 3 and 24 characters"

    if not _RESOURCE_NAME_PATTERN.match(name):
        return "Resource name can only contain letters, numbers, hyphens, and underscores"

    if name.startswith("-") or name.endswith("-"):
        return "Resource name cannot start or end with a hyphen"

    return None


def validate_resource_group(resource_group: str) -> Optional[str]:
    """Validate a resource group name."""
    if not resource_group:
        return "Resource group cannot be empty"

    if len(resource_group) > 90:
        return "Resource group name cannot exceed 90 characters"

    if not _RESOURCE_GROUP_PATTERN.match(resource_group):
        return "Resource group name contains invalid characters"

    if resource_group.endswith("."):
        return "Resource group name cannot end with a period"

    return None


def validate_subscription_id(subscription_id: str) -> Optional[str]:
    """Validate a subscription ID (8-4-4-4-12 hex groups)."""
    if not subscription_id:
        return "Subscription ID cannot be empty"

    if not _SUBSCRIPTION_ID_PATTERN.match(subscription_id):
        return "Invalid subscription ID format"

    return None


def validate_json(json_string: str) -> Optional[str]:
    """Validate that a string parses as any JSON value."""
    if not json_string:
        return "JSON cannot be empty"

    try:
        json.loads(json_string)
    except ValueError as e:
        return f"Invalid JSON format: {e}"

    return None


def validate_email(email: str) -> Optional[str]:
    if not email:
        return "Email cannot be empty"

    if not _EMAIL_PATTERN.match(email):
        return "Invalid email format"

    return None


def validate_url(url: str) -> Optional[str]:
    """Validate a URL; a scheme and a host are both required."""
    if not url:
        return "URL cannot be empty"

    try:
        parts = urlsplit(url)
    except ValueError:
        return "Invalid URL format"

    if not parts.scheme or not parts.netloc or not parts.hostname:
        return "Invalid URL format"

    return None


def validate_key_vault_name(name: str) -> Optional[str]:
    """Validate a Key Vault name."""
    if not name:
        return "Key Vault name cannot be empty"

    if len(name) < 3 or len(name) > 24:
        return "Key Vault name must be between 3 and 24 characters"

    if not _KEY_VAULT_NAME_PATTERN.match(name):
        return (
            "Key Vault name must start with a letter, end with a letter or number, "
            "and contain only letters, numbers, and hyphens"
        )

    return None


def validate_object_name(name: str, kind: str = "Object") -> Optional[str]:
    """
    Validate the name of a vault object (secret, key or certificate).

    All three share the rule: 1-127 letters, numbers and hyphens.
    """
    if not name:
        return f"{kind} name cannot be empty"

    if len(name) > 127:
        return f"{kind} name cannot exceed 127 characters"

    if not _OBJECT_NAME_PATTERN.match(name):
        return f"{kind} name can only contain letters, numbers, and hyphens"

    return None


def validate_secret_name(name: str) -> Optional[str]:
    """Validate a secret name."""
    return validate_object_name(name, "Secret")


# =============================================================================
# Escaping and sanitization
# =============================================================================


def escape_shell_argument(argument: str) -> str:
    """
    Quote a value so it reaches the process as exactly one argument.

    Examples:
        >>> escape_shell_argument("it's")
        '\\'it\\'"\\'"\\'s\\''
    """
    return "'" + argument.replace("'", "'\"'\"'") + "'"


def sanitize_output(output: str) -> str:
    """
    Redact sensitive values from tool output.

    String values of the value/password/connectionString/key/secret fields
    are replaced; everything else, including length, is left alone.
    """
    return _SENSITIVE_FIELD_PATTERN.sub(
        lambda m: f'"{m.group(1)}"{m.group(2)}:{m.group(3)}"{REDACTED}"',
        output,
    )


def sanitize_for_log(text: str, limit: int = DEFAULT_LOG_LIMIT) -> str:
    """Redact, then truncate, text destined for a log record."""
    text = sanitize_output(text)
    if len(text) > limit:
        text = text[:limit] + TRUNCATION_MARKER
    return text


def sanitize_command_for_log(command: str, limit: int = DEFAULT_LOG_LIMIT) -> str:
    """Mask sensitive flag values in a command, then redact and truncate it."""
    masked = _SENSITIVE_FLAG_PATTERN.sub(
        lambda m: f"{m.group(1)}{m.group(2)}***",
        command,
    )
    return sanitize_for_log(masked, limit)
