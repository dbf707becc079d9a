"""Azure API Mock for testing.

In-memory implementations of the Storage management and ARM resources APIs
so the reconciler can be exercised without Azure connectivity.

Key Features:
- Storage accounts with encryption state that follows update() payloads
- Key Vault lookups through the generic ARM resources API
- Error injection for failed reads, writes and vault lookups
- Managed Identity simulation

Usage:
    from azure_mock import MockAzureContext

    with MockAzureContext() as ctx:
        ctx.storage.add_account("G", "acct1")
        reconciler = build_reconciler(config)
        result = await reconciler.read(declared)
"""

from .context import MockAzureContext
from .credential import MockManagedIdentityCredential
from .keyvault import (
    MockKeyVaultResolver,
    MockResourceManagementClient,
    MockVaultState,
)
from .storage import (
    MockStorageAccountsOperations,
    MockStorageManagementClient,
    MockStorageState,
    customer_managed_encryption,
    platform_managed_encryption,
)

__all__ = [
    "MockAzureContext",
    "MockKeyVaultResolver",
    "MockManagedIdentityCredential",
    "MockResourceManagementClient",
    "MockStorageAccountsOperations",
    "MockStorageManagementClient",
    "MockStorageState",
    "MockVaultState",
    "customer_managed_encryption",
    "platform_managed_encryption",
]
