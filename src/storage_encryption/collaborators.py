"""Contracts for the remote collaborators the reconciler depends on.

The reconciler never constructs Azure clients itself. Callers pass
implementations of these protocols in.
"""

from __future__ import annotations

from typing import Any, Protocol

from azure.mgmt.storage.models import StorageAccountUpdateParameters


class StorageAccountsApi(Protocol):
    """Subset of StorageManagementClient.storage_accounts used here.

    Implementations raise azure.core.exceptions.ResourceNotFoundError when
    the account does not exist and another AzureError for other failures.
    """

    def update(
        self,
        resource_group_name: str,
        account_name: str,
        parameters: StorageAccountUpdateParameters,
        **kwargs: Any,
    ) -> Any: ...

    def get_properties(
        self,
        resource_group_name: str,
        account_name: str,
        **kwargs: Any,
    ) -> Any: ...


class KeyVaultResolver(Protocol):
    """Resolves a Key Vault resource ID to the vault's base URI."""

    def base_url_from_id(self, key_vault_id: str) -> str:
        """Return the vault URI (e.g., https://vault1.vault.azure.net/).

        Raises:
            KeyVaultLookupError: If the vault cannot be resolved.
        """
        ...
