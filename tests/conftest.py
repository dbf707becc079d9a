"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for azure_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from azure_mock import (  # noqa: E402
    MockKeyVaultResolver,
    MockStorageAccountsOperations,
    MockStorageState,
)
from azure_mock.ids import (  # noqa: E402
    ACCOUNT_NAME,
    KEY_VAULT_ID,
    KEY_VAULT_URI,
    RESOURCE_GROUP,
    SUBSCRIPTION_ID,
)

from storage_encryption.config import Config  # noqa: E402
from storage_encryption.reconciler import EncryptionSettingsReconciler  # noqa: E402


@pytest.fixture
def config() -> Config:
    return Config(subscription_id=SUBSCRIPTION_ID)


@pytest.fixture
def storage_state() -> MockStorageState:
    state = MockStorageState()
    state.add_account(RESOURCE_GROUP, ACCOUNT_NAME)
    return state


@pytest.fixture
def storage_accounts(storage_state: MockStorageState) -> MockStorageAccountsOperations:
    return MockStorageAccountsOperations(storage_state)


@pytest.fixture
def resolver() -> MockKeyVaultResolver:
    return MockKeyVaultResolver({KEY_VAULT_ID: KEY_VAULT_URI})


@pytest.fixture
def reconciler(
    storage_accounts: MockStorageAccountsOperations,
    resolver: MockKeyVaultResolver,
    config: Config,
) -> EncryptionSettingsReconciler:
    return EncryptionSettingsReconciler(
        storage_accounts=storage_accounts,
        key_vault_resolver=resolver,
        config=config,
    )
