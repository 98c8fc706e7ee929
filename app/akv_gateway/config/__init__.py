"""
Configuration system for the AKV gateway.

Exports:
    GatewayConfig: Main configuration container
    load_config: Load configuration from YAML/env
"""

from akv_gateway.config.models import (
    CommandSettings,
    GatewayConfig,
    LoggingSettings,
    ResolverSettings,
    SecuritySettings,
    ServerSettings,
    ToolSettings,
)
from akv_gateway.config.loader import load_config, load_default_config, reload_config

__all__ = [
    "GatewayConfig",
    "ServerSettings",
    "ToolSettings",
    "CommandSettings",
    "ResolverSettings",
    "SecuritySettings",
    "LoggingSettings",
    "load_config",
    "load_default_config",
    "reload_config",
]
