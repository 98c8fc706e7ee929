"""
AKV Gateway - secure command execution for Key Vault management.

This package mediates every call a Key Vault client makes to an
already-authenticated command-line tool (the Azure CLI): it validates and
allow-lists the command, runs it as an isolated process under timeout and
concurrency limits, and returns a sanitized result.
"""

__version__ = "0.3.0"
