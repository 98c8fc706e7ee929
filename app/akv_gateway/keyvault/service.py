"""
Key Vault operations over the unified adapter.

Every method builds its command with the builders module and runs it
through the adapter, so the gateway's validation, allow-list and
concurrency limits apply exactly as for free-form commands.
"""

import json
from typing import Any, Iterable, Mapping, Optional

from akv_gateway.executor.platform import UnifiedCliAdapter
from akv_gateway.executor.types import ExecutionResult
from akv_gateway.keyvault import builders
from akv_gateway.utils.logging import get_logger

logger = get_logger(__name__)


def load_json(result: ExecutionResult) -> Any:
    """
    Parse the JSON output of a successful result.

    Returns None for failed results and for empty output.

    Raises:
        ValueError: If a successful result's output is not JSON
    """
    if not result.succeeded or not result.output.strip():
        return None
    try:
        return json.loads(result.output)
    except json.JSONDecodeError as e:
        raise ValueError(f"Unexpected output from '{result.command}': {e}") from e


class KeyVaultService:
    """Vault, secret, key and certificate operations."""

    def __init__(self, adapter: UnifiedCliAdapter):
        self.adapter = adapter

    async def _run(self, command: str) -> ExecutionResult:
        result = await self.adapter.execute(command)
        if not result.succeeded:
            logger.debug("Key Vault command failed (%s)", result.status.value)
        return result

    # Account

    async def show_account(self) -> ExecutionResult:
        return await self._run(builders.show_account())

    async def list_accounts(self) -> ExecutionResult:
        return await self._run(builders.list_accounts())

    async def set_subscription(self, subscription_id: str) -> ExecutionResult:
        return await self._run(builders.set_subscription(subscription_id))

    # Vaults

    async def list_vaults(self, resource_group: Optional[str] = None) -> ExecutionResult:
        return await self._run(builders.list_key_vaults(resource_group))

    async def show_vault(self, name: str) -> ExecutionResult:
        return await self._run(builders.show_key_vault(name))

    async def create_vault(
        self,
        name: str,
        resource_group: str,
        location: str,
        tags: Optional[Mapping[str, str]] = None,
    ) -> ExecutionResult:
        return await self._run(builders.create_key_vault(name, resource_group, location, tags))

    async def delete_vault(self, name: str) -> ExecutionResult:
        return await self._run(builders.delete_key_vault(name))

    async def set_access_policy(
        self,
        vault_name: str,
        user_email: str,
        secret_permissions: Optional[Iterable[str]] = None,
        key_permissions: Optional[Iterable[str]] = None,
        certificate_permissions: Optional[Iterable[str]] = None,
    ) -> ExecutionResult:
        return await self._run(
            builders.set_access_policy(
                vault_name,
                user_email,
                secret_permissions=secret_permissions,
                key_permissions=key_permissions,
                certificate_permissions=certificate_permissions,
            )
        )

    # Secrets

    async def list_secrets(self, vault_name: str) -> ExecutionResult:
        return await self._run(builders.list_secrets(vault_name))

    async def show_secret(self, vault_name: str, secret_name: str) -> ExecutionResult:
        """Show a secret. The value field of the output is redacted by the gateway."""
        return await self._run(builders.show_secret(vault_name, secret_name))

    async def set_secret(
        self,
        vault_name: str,
        secret_name: str,
        value: str,
        content_type: Optional[str] = None,
        tags: Optional[Mapping[str, str]] = None,
    ) -> ExecutionResult:
        return await self._run(
            builders.set_secret(vault_name, secret_name, value, content_type=content_type, tags=tags)
        )

    async def delete_secret(self, vault_name: str, secret_name: str) -> ExecutionResult:
        return await self._run(builders.delete_secret(vault_name, secret_name))

    # Keys

    async def list_keys(self, vault_name: str) -> ExecutionResult:
        return await self._run(builders.list_keys(vault_name))

    async def show_key(self, vault_name: str, key_name: str) -> ExecutionResult:
        return await self._run(builders.show_key(vault_name, key_name))

    async def create_key(
        self,
        vault_name: str,
        key_name: str,
        key_type: str = "RSA",
        size: Optional[int] = None,
    ) -> ExecutionResult:
        return await self._run(builders.create_key(vault_name, key_name, key_type, size))

    async def delete_key(self, vault_name: str, key_name: str) -> ExecutionResult:
        return await self._run(builders.delete_key(vault_name, key_name))

    # Certificates

    async def list_certificates(self, vault_name: str) -> ExecutionResult:
        return await self._run(builders.list_certificates(vault_name))

    async def show_certificate(self, vault_name: str, certificate_name: str) -> ExecutionResult:
        return await self._run(builders.show_certificate(vault_name, certificate_name))

    async def create_certificate(
        self,
        vault_name: str,
        certificate_name: str,
        subject: Optional[str] = None,
        validity_months: int = 12,
        tags: Optional[Mapping[str, str]] = None,
    ) -> ExecutionResult:
        return await self._run(
            builders.create_certificate(vault_name, certificate_name, subject, validity_months, tags)
        )

    async def delete_certificate(self, vault_name: str, certificate_name: str) -> ExecutionResult:
        return await self._run(builders.delete_certificate(vault_name, certificate_name))
