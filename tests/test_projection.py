"""Tests for wire projection and the baseline payloads."""

from __future__ import annotations

import pytest
from azure_mock import customer_managed_encryption, platform_managed_encryption
from azure_mock.ids import KEY_VAULT_ID, KEY_VAULT_POLICY_ID, KEY_VAULT_URI, STORAGE_ACCOUNT_ID
from azure.mgmt.storage.models import Encryption, KeySource, KeyVaultProperties

from storage_encryption.defaults import baseline_update, revert_update
from storage_encryption.models import EncryptionSettings, KeyVaultRef
from storage_encryption.projection import EncryptionFragment, from_wire_read, to_wire_update


def declared(key_vault: KeyVaultRef | None = None) -> EncryptionSettings:
    return EncryptionSettings(storage_account_id=STORAGE_ACCOUNT_ID, key_vault=key_vault)


FULL_KEY = KeyVaultRef(
    key_vault_policy_id=KEY_VAULT_POLICY_ID,
    key_vault_id=KEY_VAULT_ID,
    key_name="k1",
    key_version="v1",
)


class TestDefaults:
    """Tests for the baseline and revert payloads."""

    def test_baseline_enables_services_with_platform_keys(self) -> None:
        encryption = baseline_update().encryption

        assert encryption.services.blob.enabled is True
        assert encryption.services.file.enabled is True
        assert encryption.key_source == KeySource.MICROSOFT_STORAGE
        assert encryption.key_vault_properties is not None
        assert encryption.key_vault_properties.key_name is None

    def test_baseline_returns_fresh_objects(self) -> None:
        first = baseline_update()
        first.encryption.key_source = KeySource.MICROSOFT_KEYVAULT

        assert baseline_update().encryption.key_source == KeySource.MICROSOFT_STORAGE

    def test_revert_matches_baseline(self) -> None:
        assert revert_update().serialize() == baseline_update().serialize()


class TestToWireUpdate:
    """Tests for outbound projection."""

    @pytest.mark.parametrize(
        "key_vault",
        [
            None,
            FULL_KEY,
            KeyVaultRef(key_vault_id=KEY_VAULT_ID, key_version="v1"),
        ],
    )
    def test_services_always_enabled(self, key_vault: KeyVaultRef | None) -> None:
        payload = to_wire_update(declared(key_vault), key_vault_uri=KEY_VAULT_URI)

        assert payload.encryption.services.blob.enabled is True
        assert payload.encryption.services.file.enabled is True

    def test_no_key_block_uses_platform_keys(self) -> None:
        payload = to_wire_update(declared())

        assert payload.encryption.key_source == KeySource.MICROSOFT_STORAGE
        assert not payload.encryption.key_vault_properties.key_vault_uri

    def test_empty_key_name_ignores_other_fields(self) -> None:
        key_vault = KeyVaultRef(
            key_vault_id=KEY_VAULT_ID,
            key_version="v1",
            key_vault_uri=KEY_VAULT_URI,
        )

        payload = to_wire_update(declared(key_vault), key_vault_uri=KEY_VAULT_URI)

        properties = payload.encryption.key_vault_properties
        assert payload.encryption.key_source == KeySource.MICROSOFT_STORAGE
        assert properties.key_name is None
        assert properties.key_version is None
        assert properties.key_vault_uri is None

    def test_empty_key_name_logs_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level("WARNING", logger="storage_encryption.projection")

        to_wire_update(declared(KeyVaultRef(key_vault_id=KEY_VAULT_ID)))

        assert "no key name" in caplog.text

    def test_named_key_uses_key_vault(self) -> None:
        payload = to_wire_update(declared(FULL_KEY), key_vault_uri=KEY_VAULT_URI)

        properties = payload.encryption.key_vault_properties
        assert payload.encryption.key_source == KeySource.MICROSOFT_KEYVAULT
        assert properties.key_name == "k1"
        assert properties.key_version == "v1"
        assert properties.key_vault_uri == KEY_VAULT_URI

    def test_named_key_requires_uri(self) -> None:
        with pytest.raises(ValueError, match="Key Vault URI"):
            to_wire_update(declared(FULL_KEY))

    def test_declared_uri_is_not_used(self) -> None:
        """The payload URI comes from the resolver, never from the record."""
        key_vault = FULL_KEY.model_copy(update={"key_vault_uri": "https://stale.vault.azure.net/"})

        payload = to_wire_update(declared(key_vault), key_vault_uri=KEY_VAULT_URI)

        assert payload.encryption.key_vault_properties.key_vault_uri == KEY_VAULT_URI


class TestFromWireRead:
    """Tests for inbound projection."""

    def test_platform_managed(self) -> None:
        fragment = from_wire_read(platform_managed_encryption(), KEY_VAULT_ID, KEY_VAULT_POLICY_ID)

        assert fragment.enable_blob_encryption is True
        assert fragment.enable_file_encryption is True
        assert fragment.key_vault is None

    def test_customer_managed_carries_ids_forward(self) -> None:
        fragment = from_wire_read(
            customer_managed_encryption("k1", "v1", KEY_VAULT_URI),
            key_vault_id=KEY_VAULT_ID,
            key_vault_policy_id=KEY_VAULT_POLICY_ID,
        )

        assert fragment.key_vault == KeyVaultRef(
            key_vault_policy_id=KEY_VAULT_POLICY_ID,
            key_vault_id=KEY_VAULT_ID,
            key_name="k1",
            key_version="v1",
            key_vault_uri=KEY_VAULT_URI,
        )

    def test_ids_default_to_empty(self) -> None:
        fragment = from_wire_read(customer_managed_encryption("k1", "v1", KEY_VAULT_URI))

        assert fragment.key_vault is not None
        assert fragment.key_vault.key_vault_id == ""
        assert fragment.key_vault.key_vault_policy_id == ""

    def test_empty_key_vault_properties_are_absent(self) -> None:
        encryption = platform_managed_encryption()
        encryption.key_vault_properties = KeyVaultProperties()

        assert from_wire_read(encryption).key_vault is None

    def test_missing_encryption(self) -> None:
        assert from_wire_read(None) == EncryptionFragment()

    def test_missing_services(self) -> None:
        fragment = from_wire_read(Encryption(key_source=KeySource.MICROSOFT_STORAGE))

        assert fragment.enable_blob_encryption is None
        assert fragment.enable_file_encryption is None

    def test_round_trip_recovers_key(self) -> None:
        payload = to_wire_update(declared(FULL_KEY), key_vault_uri=KEY_VAULT_URI)

        fragment = from_wire_read(payload.encryption, KEY_VAULT_ID, KEY_VAULT_POLICY_ID)

        assert fragment.key_vault.key_name == FULL_KEY.key_name
        assert fragment.key_vault.key_version == FULL_KEY.key_version
        assert fragment.key_vault.key_vault_uri == KEY_VAULT_URI
        assert fragment.key_vault.key_vault_id == FULL_KEY.key_vault_id
        assert fragment.key_vault.key_vault_policy_id == FULL_KEY.key_vault_policy_id


class TestEncryptionFragment:
    """Tests for applying a fragment onto a declaration."""

    def test_apply_replaces_remote_attributes(self) -> None:
        original = declared(FULL_KEY)
        fragment = EncryptionFragment(enable_blob_encryption=True, enable_file_encryption=False)

        updated = fragment.apply_to(original)

        assert updated.key_vault is None
        assert updated.enable_blob_encryption is True
        assert updated.enable_file_encryption is False
        assert updated.storage_account_id == STORAGE_ACCOUNT_ID

    def test_apply_leaves_original_untouched(self) -> None:
        original = declared(FULL_KEY)

        EncryptionFragment().apply_to(original)

        assert original.key_vault == FULL_KEY
