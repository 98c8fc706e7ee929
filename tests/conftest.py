"""
Pytest configuration and shared fixtures.
"""

import logging
import stat
import sys
from pathlib import Path

import pytest

# Add app directory to path
APP_DIR = Path(__file__).parent.parent / "app"
sys.path.insert(0, str(APP_DIR))

from akv_gateway.utils.logging import LogBuffer  # noqa: E402

# Stand-in for the Azure CLI: a POSIX shell script whose behaviour is
# picked by its first argument.
FAKE_AZ_SCRIPT = """#!/bin/sh
case "$1" in
  --version)
    echo "azure-cli                         2.61.0"
    echo ""
    echo "core                              2.61.0"
    echo "telemetry                          1.1.0"
    ;;
  account)
    if [ -n "$FAKE_AZ_LOGGED_IN" ]; then
      echo '{"name": "dev-subscription", "user": {"name": "dev@example.com"}}'
    else
      echo "Please run 'az login' to setup account." >&2
      exit 1
    fi
    ;;
  keyvault|args)
    shift
    for arg in "$@"; do
      printf '%s\\n' "$arg"
    done
    ;;
  secret)
    echo '{"name": "db-password", "value": "topsecret"}'
    ;;
  env)
    printenv "$2"
    ;;
  pwd)
    pwd
    ;;
  sleep)
    exec sleep "$2"
    ;;
  fail)
    echo "ERROR: resource not found" >&2
    exit 3
    ;;
  *)
    echo "[]"
    ;;
esac
"""


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an async test"
    )


@pytest.fixture
def fake_az(tmp_path: Path) -> Path:
    """Write an executable fake az into a temporary bin directory."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "az"
    script.write_text(FAKE_AZ_SCRIPT)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def log_buffer():
    """Collect gateway log records for the duration of a test."""
    buffer = LogBuffer(capacity=100, level=logging.DEBUG)
    gateway_logger = logging.getLogger("akv_gateway")
    previous_level = gateway_logger.level
    gateway_logger.addHandler(buffer)
    gateway_logger.setLevel(logging.DEBUG)
    yield buffer
    gateway_logger.removeHandler(buffer)
    gateway_logger.setLevel(previous_level)
