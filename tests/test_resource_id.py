"""Tests for resource ID parsing and handle derivation."""

from __future__ import annotations

import pytest
from azure_mock.ids import (
    HANDLE,
    KEY_VAULT_ID,
    KEY_VAULT_POLICY_ID,
    STORAGE_ACCOUNT_ID,
    SUBSCRIPTION_ID,
    VAULT_SUBSCRIPTION_ID,
)

from storage_encryption.errors import MalformedIdentifier
from storage_encryption.resource_id import (
    derive_handle,
    parse_key_vault_id,
    parse_resource_id,
    parse_storage_account_id,
    storage_account_id_from_handle,
)


class TestParseResourceId:
    """Tests for the generic ARM ID grammar."""

    def test_parses_storage_account_id(self) -> None:
        parsed = parse_resource_id(STORAGE_ACCOUNT_ID)

        assert parsed.subscription_id == SUBSCRIPTION_ID
        assert parsed.resource_group == "G"
        assert parsed.provider == "Microsoft.Storage"
        assert parsed.path == {"storageAccounts": "acct1"}

    def test_parses_nested_resource_id(self) -> None:
        parsed = parse_resource_id(KEY_VAULT_POLICY_ID)

        assert parsed.provider == "Microsoft.KeyVault"
        assert parsed.path["vaults"] == "vault1"
        assert "objectId" in parsed.path

    def test_resource_groups_segment_is_case_insensitive(self) -> None:
        parsed = parse_resource_id(
            f"/subscriptions/{SUBSCRIPTION_ID}/resourcegroups/G"
            "/providers/Microsoft.Storage/storageAccounts/acct1"
        )

        assert parsed.resource_group == "G"

    def test_subscription_level_id(self) -> None:
        parsed = parse_resource_id(
            f"/subscriptions/{SUBSCRIPTION_ID}/providers/Microsoft.Authorization"
            "/roleAssignments/ra1"
        )

        assert parsed.resource_group is None
        assert parsed.path == {"roleAssignments": "ra1"}

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "subscriptions/S/resourceGroups/G",
            "/resourceGroups/G/providers/Microsoft.Storage/storageAccounts/acct1",
            "/subscriptions/S/resourceGroups/G/providers/Microsoft.Storage/storageAccounts",
            "/subscriptions/S/resourceGroups//providers/Microsoft.Storage/storageAccounts/a",
        ],
    )
    def test_rejects_malformed_ids(self, value: str) -> None:
        with pytest.raises(MalformedIdentifier) as exc_info:
            parse_resource_id(value)

        assert exc_info.value.identifier == value


class TestParseStorageAccountId:
    """Tests for storage account ID extraction."""

    def test_extracts_group_and_name(self) -> None:
        account = parse_storage_account_id(STORAGE_ACCOUNT_ID)

        assert account.subscription_id == SUBSCRIPTION_ID
        assert account.resource_group == "G"
        assert account.account_name == "acct1"

    def test_missing_resource_group(self) -> None:
        value = (
            f"/subscriptions/{SUBSCRIPTION_ID}/providers/Microsoft.Storage/storageAccounts/acct1"
        )

        with pytest.raises(MalformedIdentifier) as exc_info:
            parse_storage_account_id(value)

        assert "resourceGroups" in str(exc_info.value)

    def test_missing_account_name_segment(self) -> None:
        with pytest.raises(MalformedIdentifier) as exc_info:
            parse_storage_account_id(KEY_VAULT_ID)

        assert "storageAccounts" in str(exc_info.value)

    def test_suffixed_handle_is_not_an_account_id(self) -> None:
        with pytest.raises(MalformedIdentifier):
            parse_storage_account_id(HANDLE)


class TestParseKeyVaultId:
    """Tests for Key Vault ID extraction."""

    def test_extracts_vault(self) -> None:
        vault = parse_key_vault_id(KEY_VAULT_ID)

        assert vault.subscription_id == VAULT_SUBSCRIPTION_ID
        assert vault.resource_group == "kv-rg"
        assert vault.vault_name == "vault1"

    def test_rejects_storage_account_id(self) -> None:
        with pytest.raises(MalformedIdentifier):
            parse_key_vault_id(STORAGE_ACCOUNT_ID)


class TestHandle:
    """Tests for handle derivation and stripping."""

    def test_derive_handle_appends_suffix(self) -> None:
        assert derive_handle(STORAGE_ACCOUNT_ID) == STORAGE_ACCOUNT_ID + "/encryptionSettings"

    def test_derive_handle_is_deterministic(self) -> None:
        assert derive_handle(STORAGE_ACCOUNT_ID) == derive_handle(STORAGE_ACCOUNT_ID)

    def test_strips_suffix_from_handle(self) -> None:
        assert storage_account_id_from_handle(HANDLE) == STORAGE_ACCOUNT_ID

    def test_strips_suffix_case_insensitively(self) -> None:
        handle = STORAGE_ACCOUNT_ID + "/EncryptionSettings"

        assert storage_account_id_from_handle(handle) == STORAGE_ACCOUNT_ID

    def test_bare_account_id_unchanged(self) -> None:
        assert storage_account_id_from_handle(STORAGE_ACCOUNT_ID) == STORAGE_ACCOUNT_ID

    @pytest.mark.parametrize(
        "handle",
        [STORAGE_ACCOUNT_ID + "/", HANDLE + "/", STORAGE_ACCOUNT_ID + "//encryptionSettings"],
    )
    def test_trailing_slashes_are_dropped(self, handle: str) -> None:
        assert storage_account_id_from_handle(handle) == STORAGE_ACCOUNT_ID

    def test_round_trip(self) -> None:
        assert storage_account_id_from_handle(derive_handle(STORAGE_ACCOUNT_ID)) == (
            STORAGE_ACCOUNT_ID
        )
