"""
Key Vault command builders.

Each builder validates its structured parameters and returns a command
string with every value embedded through ``escape_shell_argument``.
Malformed parameters raise InvalidParameterError before any command
string exists; the returned string still goes through the gateway's
validation and allow-list like any other command.
"""

import json
import re
from typing import Callable, Iterable, Mapping, Optional

from akv_gateway.executor.types import InvalidParameterError
from akv_gateway.executor.validator import (
    escape_shell_argument,
    validate_email,
    validate_key_vault_name,
    validate_resource_group,
    validate_object_name,
    validate_secret_name,
    validate_subscription_id,
)

TOOL = "az"

KEY_TYPES = {"RSA", "RSA-HSM", "EC", "EC-HSM", "oct-HSM"}
SECRET_PERMISSIONS = {
    "all", "backup", "delete", "get", "list", "purge", "recover", "restore", "set",
}
KEY_PERMISSIONS = {
    "all", "backup", "create", "decrypt", "delete", "encrypt", "get", "import",
    "list", "purge", "recover", "restore", "sign", "unwrapKey", "update",
    "verify", "wrapKey",
}
CERTIFICATE_PERMISSIONS = {
    "all", "backup", "create", "delete", "deleteissuers", "get", "getissuers",
    "import", "list", "listissuers", "managecontacts", "manageissuers", "purge",
    "recover", "restore", "setissuers", "update",
}

_LOCATION_PATTERN = re.compile(r"^[a-zA-Z0-9]+$")
_TAG_KEY_PATTERN = re.compile(r"^[^<>%&\\?/]{1,512}$")


def _check(field_name: str, validator: Callable[[str], Optional[str]], value: str) -> str:
    error = validator(value)
    if error is not None:
        raise InvalidParameterError(field_name, error)
    return value


def _vault(name: str) -> str:
    return escape_shell_argument(_check("Key Vault name", validate_key_vault_name, name))


def _object_name(kind: str, name: str) -> str:
    error = validate_object_name(name, kind)
    if error is not None:
        raise InvalidParameterError(f"{kind.lower()} name", error)
    return name


def _tags(tags: Optional[Mapping[str, str]]) -> str:
    """Render tags as escaped key=value tokens after a --tags flag."""
    if not tags:
        return ""
    tokens = []
    for key, value in tags.items():
        if not _TAG_KEY_PATTERN.match(key):
            raise InvalidParameterError("tag name", f"'{key}' is not a valid tag name")
        tokens.append(escape_shell_argument(f"{key}={value}"))
    return " --tags " + " ".join(tokens)


def _permissions(flag: str, permissions: Optional[Iterable[str]], allowed: set[str]) -> str:
    if permissions is None:
        return ""
    permissions = list(permissions)
    unknown = [p for p in permissions if p not in allowed]
    if unknown or not permissions:
        raise InvalidParameterError(flag, f"unknown permissions: {', '.join(unknown) or '(none)'}")
    return f" {flag} " + " ".join(permissions)


# =============================================================================
# Account
# =============================================================================


def show_account() -> str:
    return f"{TOOL} account show --output json"


def list_accounts() -> str:
    return f"{TOOL} account list --output json"


def set_subscription(subscription_id: str) -> str:
    _check("subscription ID", validate_subscription_id, subscription_id)
    return f"{TOOL} account set --subscription {escape_shell_argument(subscription_id)}"


# =============================================================================
# Vaults
# =============================================================================


def list_key_vaults(resource_group: Optional[str] = None) -> str:
    command = f"{TOOL} keyvault list --output json"
    if resource_group is not None:
        _check("resource group", validate_resource_group, resource_group)
        command += f" --resource-group {escape_shell_argument(resource_group)}"
    return command


def show_key_vault(name: str) -> str:
    return f"{TOOL} keyvault show --name {_vault(name)} --output json"


def create_key_vault(
    name: str,
    resource_group: str,
    location: str,
    tags: Optional[Mapping[str, str]] = None,
) -> str:
    """Build the command that creates a vault."""
    vault = _vault(name)
    _check("resource group", validate_resource_group, resource_group)
    if not _LOCATION_PATTERN.match(location or ""):
        raise InvalidParameterError("location", "must be a region name such as 'eastus'")

    return (
        f"{TOOL} keyvault create"
        f" --name {vault}"
        f" --resource-group {escape_shell_argument(resource_group)}"
        f" --location {escape_shell_argument(location)}"
        " --output json"
        f"{_tags(tags)}"
    )


def delete_key_vault(name: str) -> str:
    return f"{TOOL} keyvault delete --name {_vault(name)} --output json"


def set_access_policy(
    vault_name: str,
    user_email: str,
    secret_permissions: Optional[Iterable[str]] = None,
    key_permissions: Optional[Iterable[str]] = None,
    certificate_permissions: Optional[Iterable[str]] = None,
) -> str:
    """
    Build the command that grants a user permissions on a vault.

    At least one permission set must be given.
    """
    vault = _vault(vault_name)
    _check("user email", validate_email, user_email)
    grants = (
        _permissions("--secret-permissions", secret_permissions, SECRET_PERMISSIONS)
        + _permissions("--key-permissions", key_permissions, KEY_PERMISSIONS)
        + _permissions("--certificate-permissions", certificate_permissions, CERTIFICATE_PERMISSIONS)
    )
    if not grants:
        raise InvalidParameterError("permissions", "at least one permission set is required")

    return (
        f"{TOOL} keyvault set-policy"
        f" --name {vault}"
        f" --upn {escape_shell_argument(user_email)}"
        f"{grants}"
        " --output json"
    )


# =============================================================================
# Secrets
# =============================================================================


def list_secrets(vault_name: str) -> str:
    return f"{TOOL} keyvault secret list --vault-name {_vault(vault_name)} --output json"


def show_secret(vault_name: str, secret_name: str) -> str:
    _check("secret name", validate_secret_name, secret_name)
    return (
        f"{TOOL} keyvault secret show"
        f" --vault-name {_vault(vault_name)}"
        f" --name {escape_shell_argument(secret_name)}"
        " --output json"
    )


def set_secret(
    vault_name: str,
    secret_name: str,
    value: str,
    content_type: Optional[str] = None,
    tags: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Build the command that sets a secret.

    The value may contain any characters, including quotes and whitespace.
    """
    vault = _vault(vault_name)
    _check("secret name", validate_secret_name, secret_name)
    if value is None:
        raise InvalidParameterError("secret value", "value is required")

    command = (
        f"{TOOL} keyvault secret set"
        f" --vault-name {vault}"
        f" --name {escape_shell_argument(secret_name)}"
        f" --value {escape_shell_argument(value)}"
        " --output json"
    )
    if content_type:
        command += f" --content-type {escape_shell_argument(content_type)}"
    return command + _tags(tags)


def delete_secret(vault_name: str, secret_name: str) -> str:
    _check("secret name", validate_secret_name, secret_name)
    return (
        f"{TOOL} keyvault secret delete"
        f" --vault-name {_vault(vault_name)}"
        f" --name {escape_shell_argument(secret_name)}"
    )


# =============================================================================
# Keys
# =============================================================================


def list_keys(vault_name: str) -> str:
    return f"{TOOL} keyvault key list --vault-name {_vault(vault_name)} --output json"


def show_key(vault_name: str, key_name: str) -> str:
    _object_name("Key", key_name)
    return (
        f"{TOOL} keyvault key show"
        f" --vault-name {_vault(vault_name)}"
        f" --name {escape_shell_argument(key_name)}"
        " --output json"
    )


def create_key(
    vault_name: str,
    key_name: str,
    key_type: str = "RSA",
    size: Optional[int] = None,
) -> str:
    vault = _vault(vault_name)
    _object_name("Key", key_name)
    if key_type not in KEY_TYPES:
        raise InvalidParameterError("key type", f"must be one of {', '.join(sorted(KEY_TYPES))}")

    command = (
        f"{TOOL} keyvault key create"
        f" --vault-name {vault}"
        f" --name {escape_shell_argument(key_name)}"
        f" --kty {key_type}"
    )
    if size is not None:
        if size not in (2048, 3072, 4096):
            raise InvalidParameterError("key size", "must be 2048, 3072 or 4096")
        command += f" --size {size}"
    return command + " --output json"


def delete_key(vault_name: str, key_name: str) -> str:
    _object_name("Key", key_name)
    return (
        f"{TOOL} keyvault key delete"
        f" --vault-name {_vault(vault_name)}"
        f" --name {escape_shell_argument(key_name)}"
    )


# =============================================================================
# Certificates
# =============================================================================


def list_certificates(vault_name: str) -> str:
    return f"{TOOL} keyvault certificate list --vault-name {_vault(vault_name)} --output json"


def show_certificate(vault_name: str, certificate_name: str) -> str:
    _object_name("Certificate", certificate_name)
    return (
        f"{TOOL} keyvault certificate show"
        f" --vault-name {_vault(vault_name)}"
        f" --name {escape_shell_argument(certificate_name)}"
        " --output json"
    )


def delete_certificate(vault_name: str, certificate_name: str) -> str:
    _object_name("Certificate", certificate_name)
    return (
        f"{TOOL} keyvault certificate delete"
        f" --vault-name {_vault(vault_name)}"
        f" --name {escape_shell_argument(certificate_name)}"
    )


def create_certificate(
    vault_name: str,
    certificate_name: str,
    subject: Optional[str] = None,
    validity_months: int = 12,
    tags: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Create a self-signed certificate.

    The policy is passed inline as JSON; ``subject`` defaults to
    ``CN=<certificate_name>``.
    """
    vault = _vault(vault_name)
    _object_name("Certificate", certificate_name)
    subject = subject if subject is not None else f"CN={certificate_name}"
    if not subject.startswith("CN="):
        raise InvalidParameterError("certificate subject", "must start with 'CN='")
    if not 1 <= validity_months <= 1200:
        raise InvalidParameterError("validity", "must be between 1 and 1200 months")

    policy = {
        "issuerParameters": {"name": "Self"},
        "keyProperties": {"exportable": True, "keyType": "RSA", "keySize": 2048, "reuseKey": False},
        "secretProperties": {"contentType": "application/x-pkcs12"},
        "x509CertificateProperties": {"subject": subject, "validityInMonths": validity_months},
    }
    command = (
        f"{TOOL} keyvault certificate create"
        f" --vault-name {vault}"
        f" --name {escape_shell_argument(certificate_name)}"
        f" --policy {escape_shell_argument(json.dumps(policy, separators=(',', ':')))}"
    )
    return command + _tags(tags) + " --output json"
