"""
Configuration loader with YAML and environment variable support.

Priority (highest to lowest):
1. Environment variables: AKV_GATEWAY_COMMAND__MAX_CONCURRENT=3
2. User config: --config-dir path / ~/.akv-gateway/config.yaml
3. Built-in defaults: akv_gateway/config/defaults/
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml

from akv_gateway.config.models import GatewayConfig
from akv_gateway.utils.logging import get_logger

logger = get_logger(__name__)


# Default config locations
DEFAULT_CONFIG_DIR = Path.home() / ".akv-gateway"
PACKAGE_DEFAULTS_DIR = Path(__file__).parent / "defaults"

# Environment variable prefix
ENV_PREFIX = "AKV_GATEWAY_"
ENV_DELIMITER = "__"


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Values from 'override' take precedence over 'base'.
    Nested dicts are merged recursively; lists are replaced wholesale.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            content = yaml.safe_load(f)
            return content if content else {}
    except yaml.YAMLError as e:
        logger.warning("Failed to parse %s: %s", path, e)
        return {}


def _get_env_overrides(environ: Optional[dict[str, str]] = None) -> dict[str, Any]:
    """
    Extract configuration overrides from environment variables.

    Environment variables are expected in the format:
    AKV_GATEWAY_SECTION__KEY=value

    For nested keys, use double underscore as delimiter:
    AKV_GATEWAY_COMMAND__DEFAULT_TIMEOUT=60 -> {"command": {"default_timeout": 60}}
    AKV_GATEWAY_PLATFORM=sandboxed -> {"platform": "sandboxed"}
    """
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}

    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        # Remove prefix and split by delimiter
        key_path = key[len(ENV_PREFIX) :].lower().split(ENV_DELIMITER)
        if not all(key_path):
            continue

        # Build nested dict
        current = overrides
        for part in key_path[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[key_path[-1]] = _parse_env_value(value)

    return overrides


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate Python type."""
    # Integer
    try:
        return int(value)
    except ValueError:
        pass

    # Float
    try:
        return float(value)
    except ValueError:
        pass

    # Boolean
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    # String (default)
    return value


def _load_package_defaults() -> dict[str, Any]:
    """Packaged settings with the default allow-list merged in."""
    config_data = _load_yaml_file(PACKAGE_DEFAULTS_DIR / "settings.yaml")
    security_data = _load_yaml_file(PACKAGE_DEFAULTS_DIR / "security.yaml")
    return _deep_merge(config_data, security_data)


def load_default_config() -> GatewayConfig:
    """
    Built-in defaults only, ignoring user files and the environment.

    Used when a component is built without an explicit configuration.
    """
    return GatewayConfig.model_validate(_load_package_defaults())


def load_config(
    config_dir: Optional[str | Path] = None,
    environ: Optional[dict[str, str]] = None,
) -> GatewayConfig:
    """
    Load configuration from multiple sources.

    Args:
        config_dir: Optional path to configuration directory.
                   If not provided, uses ~/.akv-gateway/
        environ: Environment mapping to read overrides from (defaults to os.environ)

    Returns:
        GatewayConfig: Validated configuration object

    Raises:
        pydantic.ValidationError: If configuration is invalid
    """
    config_data = _load_package_defaults()

    # Merge user config
    user_config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
    user_config = _load_yaml_file(user_config_dir / "config.yaml")
    config_data = _deep_merge(config_data, user_config)

    # Merge security overrides from user config
    user_security = _load_yaml_file(user_config_dir / "security.yaml")
    config_data = _deep_merge(config_data, user_security)

    # Apply environment variable overrides (highest priority)
    env_overrides = _get_env_overrides(environ)
    config_data = _deep_merge(config_data, env_overrides)

    return GatewayConfig.model_validate(config_data)


def reload_config(
    current_config: GatewayConfig, config_dir: Optional[str | Path] = None
) -> GatewayConfig:
    """
    Reload configuration (for SIGHUP handling).

    Args:
        current_config: Current configuration (for fallback on error)
        config_dir: Configuration directory path

    Returns:
        GatewayConfig: New configuration, or current if reload fails
    """
    try:
        return load_config(config_dir)
    except Exception as e:
        logger.warning("Config reload failed, keeping current config: %s", e)
        return current_config
