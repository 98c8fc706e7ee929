"""
Unit tests for command validation, allow-listing, escaping and redaction.
"""

from pathlib import Path

import pytest
import yaml

from akv_gateway.executor.parser import base_command, exposed_text, normalize_command, split_command
from akv_gateway.executor.validator import (
    BATCH_UNSAFE_ARGUMENT,
    DANGEROUS_COMMAND,
    EMPTY_COMMAND,
    REDACTED,
    TRUNCATION_MARKER,
    CommandValidator,
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

CASES_PATH = Path(__file__).parent / "validator_cases.yaml"
with open(CASES_PATH) as f:
    CASES = yaml.safe_load(f)


# =============================================================================
# Gate 1: validate_command
# =============================================================================
class TestValidateCommand:
    """Rejection reasons for raw command strings."""

    @pytest.mark.parametrize("case", CASES["accepted"], ids=lambda c: c["name"])
    def test_accepted(self, case: dict):
        assert validate_command(case["command"]) is None

    @pytest.mark.parametrize("case", CASES["dangerous"], ids=lambda c: c["name"])
    def test_dangerous(self, case: dict):
        assert validate_command(case["command"]) == DANGEROUS_COMMAND

    @pytest.mark.parametrize("case", CASES["wrong_tool"], ids=lambda c: c["name"])
    def test_wrong_tool(self, case: dict):
        assert validate_command(case["command"]) == "Only az commands are allowed"

    @pytest.mark.parametrize("command", ["", "   ", "\t\n"])
    def test_empty(self, command: str):
        assert validate_command(command) == EMPTY_COMMAND

    def test_root_token_checked_before_characters(self):
        """A foreign command with metacharacters reports the tool rule."""
        assert validate_command("rm -rf / ; ls") == "Only az commands are allowed"

    def test_custom_tool_name(self):
        assert validate_command("kubectl get pods", tool_name="kubectl") is None
        assert validate_command("az login", tool_name="kubectl") == "Only kubectl commands are allowed"


class TestExposedText:
    """The quote-aware scan behind the metacharacter rules."""

    def test_single_quoted_span_dropped(self):
        exposed, balanced = exposed_text("az x 'a;b' c")
        assert balanced
        assert ";" not in exposed
        assert exposed.endswith(" c")

    def test_double_quoted_span_kept(self):
        exposed, balanced = exposed_text('az x "$HOME"')
        assert balanced
        assert "$HOME" in exposed

    def test_single_quote_inside_double_quotes(self):
        exposed, balanced = exposed_text('az x "it\'s"')
        assert balanced
        assert "it's" in exposed

    def test_unbalanced(self):
        _, balanced = exposed_text("az x 'open")
        assert not balanced


# =============================================================================
# Gate 2: allow-list
# =============================================================================
class TestAllowList:
    """Prefix matching against allow-list entries."""

    ALLOWED = ["az keyvault list", "az account show", "az keyvault secret"]

    @pytest.mark.parametrize(
        "command",
        [
            "az keyvault list",
            "az keyvault list --output table",
            "AZ KEYVAULT LIST",
            "az   keyvault    list",
            "  az keyvault list  ",
            "az keyvault secret show --name x",
        ],
    )
    def test_allowed(self, command: str):
        assert is_command_allowed(command, self.ALLOWED)

    @pytest.mark.parametrize(
        "command",
        ["az keyvault delete --name x", "az group list", "az account"],
    )
    def test_not_allowed(self, command: str):
        assert not is_command_allowed(command, self.ALLOWED)

    def test_blank_entries_never_match(self):
        assert not is_command_allowed("az group list", ["", "   "])

    def test_empty_list_allows_nothing(self):
        assert not is_command_allowed("az keyvault list", [])


class TestCommandValidator:
    """Gate 1 then gate 2, with the rule that blocked."""

    @pytest.fixture
    def validator(self) -> CommandValidator:
        return CommandValidator("az", ["az keyvault", "az account show"])

    def test_allows(self, validator: CommandValidator):
        result = validator.validate("az keyvault secret list --vault-name kv-one")
        assert result.allowed
        assert result.reason is None

    def test_validation_rule(self, validator: CommandValidator):
        result = validator.validate("az keyvault list; az logout")
        assert not result.allowed
        assert result.rule == "validation"
        assert result.reason == DANGEROUS_COMMAND

    def test_allow_list_rule(self, validator: CommandValidator):
        result = validator.validate("az group delete --name prod --yes")
        assert not result.allowed
        assert result.rule == "allow_list"
        assert result.reason == "Command not in allowed list: az group"

    def test_validation_runs_before_allow_list(self, validator: CommandValidator):
        """A dangerous command outside the allow-list is a validation failure."""
        result = validator.validate("az group list | sh")
        assert result.rule == "validation"


# =============================================================================
# Parser
# =============================================================================
class TestParser:
    """String to argv conversion."""

    def test_split_simple(self):
        assert split_command("az keyvault list") == ["az", "keyvault", "list"]

    def test_split_quoted_value(self):
        assert split_command("az x --value 'a b'") == ["az", "x", "--value", "a b"]

    def test_split_unbalanced_raises(self):
        with pytest.raises(ValueError):
            split_command("az x 'open")

    def test_normalize(self):
        assert normalize_command("  AZ  KeyVault\tList ") == "az keyvault list"

    def test_base_command(self):
        assert base_command("az keyvault secret show --name x") == "az keyvault"
        assert base_command("az") == "az"


# =============================================================================
# Escaping
# =============================================================================
class TestEscapeShellArgument:
    """Values embedded with escape_shell_argument come back as one argument."""

    def test_single_quote(self):
        assert escape_shell_argument("it's") == "'it'\"'\"'s'"

    @pytest.mark.parametrize(
        "value",
        [
            "plain",
            "two words",
            "it's",
            'say "hi"',
            "a;b|c&d",
            "$(whoami) `id`",
            "",
            "  padded  ",
            "'''",
        ],
    )
    def test_survives_split(self, value: str):
        command = f"az keyvault secret set --value {escape_shell_argument(value)}"
        assert split_command(command)[-1] == value

    @pytest.mark.parametrize("value", ["a;b", "$(whoami)", "x | y", "it's \"quoted\""])
    def test_escaped_value_passes_validation(self, value: str):
        command = f"az keyvault secret set --value {escape_shell_argument(value)}"
        assert validate_command(command) is None


# =============================================================================
# Redaction
# =============================================================================
class TestSanitizeOutput:
    """Sensitive JSON string fields are redacted."""

    def test_value_redacted(self):
        output = '{"name": "db-password", "value": "topsecret"}'
        assert sanitize_output(output) == f'{{"name": "db-password", "value": "{REDACTED}"}}'

    @pytest.mark.parametrize("field", ["value", "password", "connectionString", "key", "secret"])
    def test_sensitive_fields(self, field: str):
        output = f'{{"{field}": "hidden"}}'
        assert "hidden" not in sanitize_output(output)

    def test_compact_json(self):
        result = sanitize_output('{"value":"topsecret","name":"ok"}')
        assert REDACTED in result
        assert '"name":"ok"' in result
        assert "topsecret" not in result

    def test_whitespace_preserved(self):
        output = '{\n  "value" :  "abc"\n}'
        assert sanitize_output(output) == f'{{\n  "value" :  "{REDACTED}"\n}}'

    def test_escaped_quotes_inside_value(self):
        output = r'{"value": "a\"b\"c", "name": "n"}'
        assert sanitize_output(output) == f'{{"value": "{REDACTED}", "name": "n"}}'

    def test_field_names_are_case_sensitive(self):
        output = '{"Value": "keep"}'
        assert sanitize_output(output) == output

    def test_non_string_values_untouched(self):
        output = '{"key": null, "enabled": true}'
        assert sanitize_output(output) == output

    def test_other_fields_untouched(self):
        output = '[{"name": "kv-one", "location": "eastus"}]'
        assert sanitize_output(output) == output


class TestSanitizeForLog:
    """Log text is redacted first, then truncated."""

    def test_short_text_unchanged(self):
        assert sanitize_for_log("hello") == "hello"

    def test_truncated(self):
        result = sanitize_for_log("x" * 600, limit=500)
        assert result == "x" * 500 + TRUNCATION_MARKER

    def test_secret_straddling_limit_not_leaked(self):
        text = "y" * 490 + '{"value": "' + "s" * 100 + '"}'
        result = sanitize_for_log(text, limit=500)
        assert "sssss" not in result

    def test_command_flags_masked(self):
        command = "az keyvault secret set --name n --value 'p w' --vault-name kv"
        assert sanitize_command_for_log(command) == (
            "az keyvault secret set --name n --value *** --vault-name kv"
        )

    def test_command_equals_form_masked(self):
        assert sanitize_command_for_log("az login --password=hunter2") == "az login --password=***"

    def test_permission_flags_not_masked(self):
        command = "az keyvault set-policy --name kv --key-permissions get list"
        assert sanitize_command_for_log(command) == command


# =============================================================================
# Field validators
# =============================================================================
class TestFieldValidators:
    """Structured parameter checks return None or a reason."""

    @pytest.mark.parametrize("name", ["abc", "my-key_01", "My-Name_1", "a" * 24])
    def test_resource_name_valid(self, name: str):
        assert validate_resource_name(name) is None

    @pytest.mark.parametrize("name", ["", "ab", "a" * 25, "bad name", "-lead", "trail-"])
    def test_resource_name_invalid(self, name: str):
        assert validate_resource_name(name) is not None

    def test_resource_group(self):
        assert validate_resource_group("rg-prod.eu(1)") is None
        assert validate_resource_group("") is not None
        assert validate_resource_group("ends.") is not None
        assert validate_resource_group("a" * 91) is not None
        assert validate_resource_group("bad/name") is not None

    def test_subscription_id(self):
        assert validate_subscription_id("12345678-90ab-CDEF-1234-567890abcdef") is None
        assert validate_subscription_id("not-a-guid") == "Invalid subscription ID format"
        assert validate_subscription_id("") is not None

    def test_json(self):
        assert validate_json('{"a": 1}') is None
        assert validate_json("[1, 2]") is None
        assert validate_json("{bad") is not None
        assert validate_json("") is not None

    def test_email(self):
        assert validate_email("dev@example.com") is None
        assert validate_email("dev@example") == "Invalid email format"
        assert validate_email("") is not None

    def test_url(self):
        assert validate_url("https://kv-one.vault.azure.net/") is None
        assert validate_url("kv-one.vault.azure.net") is not None
        assert validate_url("https://") is not None
        assert validate_url("") is not None

    @pytest.mark.parametrize("name", ["kv1", "my-vault-01", "A" + "b" * 23])
    def test_key_vault_name_valid(self, name: str):
        assert validate_key_vault_name(name) is None

    @pytest.mark.parametrize("name", ["", "kv", "1vault", "vault-", "my_vault", "a" * 25])
    def test_key_vault_name_invalid(self, name: str):
        assert validate_key_vault_name(name) is not None

    def test_secret_name(self):
        assert validate_secret_name("db-password-2") is None
        assert validate_secret_name("db_password") is not None
        assert validate_secret_name("a" * 128) is not None
        assert validate_secret_name("") is not None

    @pytest.mark.parametrize("name", ["k", "web-cert-2", "a" * 127])
    def test_object_name_valid(self, name: str):
        assert validate_object_name(name, "Key") is None

    def test_object_name_invalid(self):
        assert validate_object_name("", "Key") == "Key name cannot be empty"
        assert validate_object_name("a" * 128, "Key") == "Key name cannot exceed 127 characters"
        assert validate_object_name("web_cert", "Certificate") == (
            "Certificate name can only contain letters, numbers, and hyphens"
        )


# =============================================================================
# Batch script arguments
# =============================================================================
class TestBatchArguments:
    """Arguments bound for cmd.exe."""

    @pytest.mark.parametrize(
        "path",
        [r"C:\Program Files\Microsoft SDKs\Azure\CLI2\wbin\az.cmd", "AZ.CMD", "run.bat"],
    )
    def test_batch_script(self, path: str):
        assert is_batch_script(path)

    @pytest.mark.parametrize("path", ["/usr/bin/az", r"C:\tools\az.exe", "az.cmd.sh"])
    def test_not_batch_script(self, path: str):
        assert not is_batch_script(path)

    def test_plain_arguments_allowed(self):
        args = ["keyvault", "secret", "set", "--value", "two words; it's fine"]
        assert validate_batch_arguments(args) is None

    @pytest.mark.parametrize(
        "value",
        ["a&calc", "a|b", "a>b", "a^b", "%PATH%", "!x!", 'say "hi"', "(x)"],
    )
    def test_cmd_metacharacters_rejected(self, value: str):
        assert validate_batch_arguments(["--value", value]) == BATCH_UNSAFE_ARGUMENT
