"""Translation between declared settings and the Storage API shapes.

Outbound: EncryptionSettings -> StorageAccountUpdateParameters
Inbound:  Encryption (from get_properties) -> EncryptionFragment

The storage API never returns the Key Vault resource ID or the access
policy ID, so inbound projection carries them forward from the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from azure.mgmt.storage.models import (
    Encryption,
    KeyVaultProperties,
    StorageAccountUpdateParameters,
)

from .defaults import CUSTOMER_MANAGED_KEY_SOURCE, baseline_update
from .models import EncryptionSettings, KeySelection, KeyVaultRef

logger = logging.getLogger(__name__)


@dataclass
class EncryptionFragment:
    """Declared-state attributes recovered from remote encryption state.

    Attributes:
        enable_blob_encryption: Remote blob service flag, if reported.
        enable_file_encryption: Remote file service flag, if reported.
        key_vault: Rebuilt key reference, or None when the account has no key.
    """

    enable_blob_encryption: bool | None = None
    enable_file_encryption: bool | None = None
    key_vault: KeyVaultRef | None = None

    def apply_to(self, declared: EncryptionSettings) -> EncryptionSettings:
        """Return a copy of declared with the remote attributes applied."""
        return declared.model_copy(
            update={
                "enable_blob_encryption": self.enable_blob_encryption,
                "enable_file_encryption": self.enable_file_encryption,
                "key_vault": self.key_vault,
            },
            deep=True,
        )


def to_wire_update(
    declared: EncryptionSettings,
    key_vault_uri: str | None = None,
) -> StorageAccountUpdateParameters:
    """Build the update payload for a declared configuration.

    Args:
        declared: Declared encryption settings.
        key_vault_uri: Vault URI resolved from key_vault.key_vault_id.
            Required when a customer-managed key is selected.

    Returns:
        Payload for storage_accounts.update().

    Raises:
        ValueError: If a customer-managed key is selected without a vault URI.
    """
    payload = baseline_update()
    selection = declared.key_selection

    if selection == KeySelection.INCOMPLETE:
        logger.warning(
            "Key Vault block has no key name, using platform-managed keys",
            extra={"storage_account_id": declared.storage_account_id},
        )

    key_vault = declared.key_vault
    if key_vault is None or selection != KeySelection.CUSTOMER_MANAGED:
        return payload

    if not key_vault_uri:
        raise ValueError(f"A resolved Key Vault URI is required for key {key_vault.key_name!r}")

    payload.encryption.key_source = CUSTOMER_MANAGED_KEY_SOURCE
    payload.encryption.key_vault_properties = KeyVaultProperties(
        key_name=key_vault.key_name,
        key_version=key_vault.key_version,
        key_vault_uri=key_vault_uri,
    )
    return payload


def _has_key(properties: KeyVaultProperties) -> bool:
    return any((properties.key_name, properties.key_version, properties.key_vault_uri))


def from_wire_read(
    encryption: Encryption | None,
    key_vault_id: str = "",
    key_vault_policy_id: str = "",
) -> EncryptionFragment:
    """Project remote encryption state into declared-state attributes.

    Args:
        encryption: Encryption settings as reported by get_properties.
        key_vault_id: Carried forward from the existing declaration.
        key_vault_policy_id: Carried forward from the existing declaration.

    Returns:
        EncryptionFragment; key_vault is None when the account has no
        Key Vault key configured.
    """
    fragment = EncryptionFragment()
    if encryption is None:
        return fragment

    services = encryption.services
    if services is not None:
        if services.blob is not None:
            fragment.enable_blob_encryption = services.blob.enabled
        if services.file is not None:
            fragment.enable_file_encryption = services.file.enabled

    properties = encryption.key_vault_properties
    if properties is not None and _has_key(properties):
        fragment.key_vault = KeyVaultRef(
            key_vault_id=key_vault_id,
            key_vault_policy_id=key_vault_policy_id,
            key_name=properties.key_name or "",
            key_version=properties.key_version or "",
            key_vault_uri=properties.key_vault_uri or "",
        )

    return fragment
