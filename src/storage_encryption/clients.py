"""Azure SDK backed collaborators.

StorageManagementClient.storage_accounts satisfies StorageAccountsApi as
is. Key Vault URIs are read from the vault's generic ARM resource in the
vault's own subscription, which may differ from the storage account's.
"""

from __future__ import annotations

import logging

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.storage import StorageManagementClient

from .collaborators import StorageAccountsApi
from .config import Config
from .errors import KeyVaultLookupError, MalformedIdentifier
from .reconciler import EncryptionSettingsReconciler
from .resource_id import parse_key_vault_id
from .security import get_managed_identity_credential

logger = logging.getLogger(__name__)

# Microsoft.KeyVault/vaults API version for generic resource reads
KEY_VAULT_API_VERSION = "2023-07-01"


class ArmKeyVaultResolver:
    """Resolve Key Vault IDs to vault URIs via the ARM resources API."""

    def __init__(self, credential: TokenCredential) -> None:
        self._credential = credential
        self._clients: dict[str, ResourceManagementClient] = {}

    def _client_for(self, subscription_id: str) -> ResourceManagementClient:
        client = self._clients.get(subscription_id)
        if client is None:
            client = ResourceManagementClient(
                credential=self._credential,
                subscription_id=subscription_id,
            )
            self._clients[subscription_id] = client
        return client

    def base_url_from_id(self, key_vault_id: str) -> str:
        """Return the URI of the vault identified by key_vault_id.

        Raises:
            KeyVaultLookupError: If the ID is malformed, the vault does not
                exist, the call fails, or the vault reports no URI.
        """
        try:
            vault_id = parse_key_vault_id(key_vault_id)
        except MalformedIdentifier as e:
            raise KeyVaultLookupError(key_vault_id, e) from e

        client = self._client_for(vault_id.subscription_id)
        try:
            vault = client.resources.get_by_id(
                resource_id=key_vault_id,
                api_version=KEY_VAULT_API_VERSION,
            )
        except ResourceNotFoundError as e:
            logger.warning("Key Vault not found", extra={"key_vault_id": key_vault_id})
            raise KeyVaultLookupError(key_vault_id, e) from e
        except AzureError as e:
            raise KeyVaultLookupError(key_vault_id, e) from e

        vault_uri = vault.properties.get("vaultUri") if vault.properties else None
        if not vault_uri:
            raise KeyVaultLookupError(key_vault_id, "vault reported no vaultUri")

        logger.debug(
            "Resolved Key Vault URI",
            extra={"key_vault_id": key_vault_id, "vault_uri": vault_uri},
        )
        return vault_uri


def build_storage_accounts_api(
    credential: TokenCredential, subscription_id: str
) -> StorageAccountsApi:
    """Create the storage accounts operations group for a subscription."""
    client = StorageManagementClient(credential=credential, subscription_id=subscription_id)
    return client.storage_accounts


def build_reconciler(config: Config) -> EncryptionSettingsReconciler:
    """Wire Azure SDK collaborators into a reconciler.

    Raises:
        SecretlessViolationError: If credential secrets are in the environment.
    """
    credential = get_managed_identity_credential(client_id=config.managed_identity_client_id)
    return EncryptionSettingsReconciler(
        storage_accounts=build_storage_accounts_api(credential, config.subscription_id),
        key_vault_resolver=ArmKeyVaultResolver(credential),
        config=config,
    )
