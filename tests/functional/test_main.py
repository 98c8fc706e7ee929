"""
Functional tests for the entry point modes and SIGHUP reload.
"""

import signal
import sys

import pytest

import main
from akv_gateway.config import GatewayConfig
from akv_gateway.executor import UnifiedCliAdapter

SIGHUP = getattr(signal, "SIGHUP", None)


def _config(fake_az) -> GatewayConfig:
    return GatewayConfig.model_validate(
        {
            "platform": "linux",
            "command": {"default_timeout": 30, "kill_grace": 2},
            "resolver": {"candidate_paths": [str(fake_az)]},
            "security": {"allowed_commands": ["az --version", "az account", "az keyvault", "az fail"]},
        }
    )


class TestRunOnce:
    """--exec prints output and mirrors the exit status."""

    def test_unsupported(self, capsys):
        code = main.run_once(GatewayConfig(platform="sandboxed"), "az keyvault list")

        assert code == 1
        assert "not supported in this environment" in capsys.readouterr().err

    @pytest.mark.skipif(sys.platform == "win32", reason="fake az is a POSIX shell script")
    def test_success(self, fake_az, capsys):
        code = main.run_once(_config(fake_az), "az keyvault list")

        assert code == 0
        assert capsys.readouterr().out == "list\n"

    @pytest.mark.skipif(sys.platform == "win32", reason="fake az is a POSIX shell script")
    def test_exit_code_passed_through(self, fake_az, capsys):
        code = main.run_once(_config(fake_az), "az fail")

        assert code == 3
        assert "resource not found" in capsys.readouterr().err

    def test_rejected(self, capsys):
        code = main.run_once(GatewayConfig(platform="linux"), "az keyvault list; reboot")

        assert code == 1
        assert "Security validation failed" in capsys.readouterr().err


class TestRunCheck:
    """--check reports readiness."""

    @pytest.mark.skipif(sys.platform == "win32", reason="fake az is a POSIX shell script")
    def test_ready(self, fake_az, capsys, monkeypatch):
        monkeypatch.setenv("FAKE_AZ_LOGGED_IN", "1")
        code = main.run_check(_config(fake_az))

        assert code == 0
        out = capsys.readouterr().out
        assert "Azure CLI is ready" in out
        assert "Version: azure-cli 2.61.0" in out

    def test_unsupported(self, capsys):
        assert main.run_check(GatewayConfig(platform="sandboxed")) == 1


class TestSighupReload:
    """SIGHUP reloads configuration into the running adapter."""

    def test_reload_applied(self, tmp_path, capsys):
        (tmp_path / "config.yaml").write_text("command:\n  max_concurrent: 2\n")
        (tmp_path / "security.yaml").write_text("security:\n  allowed_commands:\n    - az account\n")
        adapter = UnifiedCliAdapter(GatewayConfig(platform="linux"))

        handler = main.make_sighup_handler(adapter, str(tmp_path))
        handler(SIGHUP, None)

        assert adapter.config.command.max_concurrent == 2
        assert adapter.gateway.max_concurrent == 2
        assert adapter.gateway.validator.allowed_commands == ("az account",)
        assert "reloading configuration" in capsys.readouterr().err

    def test_invalid_reload_keeps_current(self, tmp_path):
        (tmp_path / "config.yaml").write_text("command:\n  max_concurrent: 0\n")
        current = GatewayConfig(platform="linux")
        adapter = UnifiedCliAdapter(current)

        main.make_sighup_handler(adapter, str(tmp_path))(SIGHUP, None)

        assert adapter.config is current
        assert adapter.gateway.max_concurrent == 5
