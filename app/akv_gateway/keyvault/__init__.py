"""
Azure Key Vault operations built on the command gateway.

Builders turn structured parameters into escaped command strings;
KeyVaultService runs them through the unified adapter.
"""

from akv_gateway.keyvault import builders
from akv_gateway.keyvault.service import KeyVaultService, load_json

__all__ = [
    "builders",
    "KeyVaultService",
    "load_json",
]
