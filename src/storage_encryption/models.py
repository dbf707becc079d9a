"""Pydantic models for the declared encryption settings.

These models provide:
1. Type-safe YAML parsing of user specs (camelCase or snake_case keys)
2. Validation at the boundary (fail fast, fail loudly)
3. The declared-state record the reconciler reads and refreshes
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import MalformedIdentifier
from .resource_id import parse_key_vault_id, parse_resource_id, parse_storage_account_id

# =============================================================================
# Declared State
# =============================================================================


class KeySelection(str, Enum):
    """Whether a declared configuration selects a customer-managed key."""

    CUSTOMER_MANAGED = "customerManaged"
    NOT_CONFIGURED = "notConfigured"
    # key_vault block present but key_name empty (e.g., after import)
    INCOMPLETE = "incomplete"


class KeyVaultRef(BaseModel):
    """Reference to a Key Vault key used for account encryption.

    key_vault_id and key_vault_policy_id are never returned by the storage
    API. After an import they are empty until the caller fills them in.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    # Only present to order this resource after the vault access policy
    key_vault_policy_id: str = Field("", alias="keyVaultPolicyId")
    key_vault_id: str = Field("", alias="keyVaultId")
    key_name: str = Field("", alias="keyName")
    key_version: str = Field("", alias="keyVersion")
    # Computed from key_vault_id, never user input
    key_vault_uri: str = Field("", alias="keyVaultUri")


class EncryptionSettings(BaseModel):
    """Declared encryption configuration of one storage account."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    storage_account_id: str = Field(alias="storageAccountId")
    key_vault: KeyVaultRef | None = Field(None, alias="keyVault")

    # Informational, filled from remote state on read
    enable_blob_encryption: bool | None = Field(None, alias="enableBlobEncryption")
    enable_file_encryption: bool | None = Field(None, alias="enableFileEncryption")

    @property
    def key_selection(self) -> KeySelection:
        """Classify the declared key configuration."""
        if self.key_vault is None:
            return KeySelection.NOT_CONFIGURED
        if not self.key_vault.key_name:
            return KeySelection.INCOMPLETE
        return KeySelection.CUSTOMER_MANAGED

    def to_state_dict(self) -> dict[str, Any]:
        """Render as a snake_case dict for state output."""
        return self.model_dump(by_alias=False)


# =============================================================================
# User Spec
# =============================================================================


def _validate_resource_id(v: str) -> str:
    try:
        parse_resource_id(v)
    except MalformedIdentifier as e:
        raise ValueError(str(e)) from e
    return v


class KeyVaultSpec(BaseModel):
    """User-supplied Key Vault key reference."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    key_vault_policy_id: str = Field(alias="keyVaultPolicyId")
    key_vault_id: str = Field(alias="keyVaultId")
    key_name: Annotated[str, Field(min_length=1, alias="keyName")]
    key_version: Annotated[str, Field(min_length=1, alias="keyVersion")]

    @model_validator(mode="before")
    @classmethod
    def reject_vault_uri(cls, data: Any) -> Any:
        if isinstance(data, dict) and ("keyVaultUri" in data or "key_vault_uri" in data):
            raise ValueError("keyVaultUri is computed from keyVaultId and cannot be set")
        return data

    @field_validator("key_vault_policy_id")
    @classmethod
    def validate_policy_id(cls, v: str) -> str:
        return _validate_resource_id(v)

    @field_validator("key_vault_id")
    @classmethod
    def validate_vault_id(cls, v: str) -> str:
        try:
            parse_key_vault_id(v)
        except MalformedIdentifier as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("key_name", "key_version")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class EncryptionSettingsSpec(BaseModel):
    """User-facing specification for storage account encryption settings.

    Example (YAML):
        storageAccountId: /subscriptions/.../storageAccounts/acct1
        keyVault:
          keyVaultPolicyId: /subscriptions/.../accessPolicies/...
          keyVaultId: /subscriptions/.../providers/Microsoft.KeyVault/vaults/vault1
          keyName: k1
          keyVersion: v1
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    storage_account_id: str = Field(alias="storageAccountId")
    key_vault: KeyVaultSpec | None = Field(None, alias="keyVault")

    @field_validator("storage_account_id")
    @classmethod
    def validate_storage_account_id(cls, v: str) -> str:
        try:
            parse_storage_account_id(v)
        except MalformedIdentifier as e:
            raise ValueError(str(e)) from e
        return v

    def to_declared(self) -> EncryptionSettings:
        """Convert to the declared-state record."""
        key_vault: KeyVaultRef | None = None
        if self.key_vault is not None:
            key_vault = KeyVaultRef(
                key_vault_policy_id=self.key_vault.key_vault_policy_id,
                key_vault_id=self.key_vault.key_vault_id,
                key_name=self.key_vault.key_name,
                key_version=self.key_vault.key_version,
            )
        return EncryptionSettings(
            storage_account_id=self.storage_account_id,
            key_vault=key_vault,
        )
