"""Baseline encryption payloads for storage account writes.

Blob and file encryption cannot be disabled through these settings, so
every payload built here enables both services. Without a Key Vault key
the key source reverts to Microsoft.Storage (platform-managed keys).
"""

from __future__ import annotations

from azure.mgmt.storage.models import (
    Encryption,
    EncryptionService,
    EncryptionServices,
    KeySource,
    KeyVaultProperties,
    StorageAccountUpdateParameters,
)

PLATFORM_MANAGED_KEY_SOURCE = KeySource.MICROSOFT_STORAGE
CUSTOMER_MANAGED_KEY_SOURCE = KeySource.MICROSOFT_KEYVAULT


def baseline_update() -> StorageAccountUpdateParameters:
    """Build the update payload every write starts from.

    Returns a fresh object on each call; callers may mutate it.
    """
    return StorageAccountUpdateParameters(
        encryption=Encryption(
            services=EncryptionServices(
                blob=EncryptionService(enabled=True),
                file=EncryptionService(enabled=True),
            ),
            key_source=PLATFORM_MANAGED_KEY_SOURCE,
            key_vault_properties=KeyVaultProperties(),
        )
    )


def revert_update() -> StorageAccountUpdateParameters:
    """Build the payload that reverts an account to platform-managed keys.

    Used in place of a delete: the storage account itself is never removed.
    """
    return baseline_update()
