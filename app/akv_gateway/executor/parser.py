"""
Command string tokenizing.

Commands travel through the gateway as strings so they can be validated
and allow-listed as text, but they are never handed to a shell. This
module is the single place where a command string becomes an argument
vector, using POSIX quoting rules so that values embedded with
``escape_shell_argument`` come back out as exactly one argument.
"""

import shlex


def split_command(command: str) -> list[str]:
    """
    Split a command string into an argument vector.

    Examples:
        >>> split_command("az keyvault secret set --value 'a b'")
        ['az', 'keyvault', 'secret', 'set', '--value', 'a b']

        >>> split_command("az tag --value 'it'\\"'\\"'s'")
        ['az', 'tag', '--value', "it's"]

    Raises:
        ValueError: If the command has unbalanced quotes
    """
    return shlex.split(command, posix=True)


def normalize_command(command: str) -> str:
    """Collapse whitespace and lower-case, for allow-list matching."""
    return " ".join(command.split()).lower()


def root_token(command: str) -> str:
    """First whitespace-separated token of the command, or ''."""
    parts = command.split(maxsplit=1)
    return parts[0] if parts else ""


def base_command(command: str) -> str:
    """
    First two tokens of a command, for log messages.

    Examples:
        >>> base_command("az keyvault secret show --name x")
        'az keyvault'
    """
    parts = command.split()
    return " ".join(parts[:2])


def exposed_text(command: str) -> tuple[str, bool]:
    """
    Return the part of a command that quoting does not protect.

    Single-quoted spans are literal and are dropped. Double-quoted spans
    are kept, since ``$`` and backticks stay live inside them for any
    shell that might see the text. Backslash escapes outside single
    quotes are kept as-is.

    Returns:
        (exposed, balanced) - the unprotected text, and False when a quote
        was left open
    """
    exposed: list[str] = []
    in_single_quote = False
    in_double_quote = False
    i = 0

    while i < len(command):
        char = command[i]

        if in_single_quote:
            if char == "'":
                in_single_quote = False
        elif char == "\\":
            exposed.append(command[i : i + 2])
            i += 1
        elif char == '"':
            in_double_quote = not in_double_quote
        elif char == "'" and not in_double_quote:
            in_single_quote = True
        else:
            exposed.append(char)

        i += 1

    return "".join(exposed), not (in_single_quote or in_double_quote)
