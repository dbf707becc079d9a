"""Error kinds raised by the encryption settings reconciler.

Every failure a collaborator reports is wrapped with the resource name and
operation so callers can act on it. Nothing here is retried: retry policy
belongs to the Azure SDK pipeline, not to the reconciler.

Absence of the storage account is NOT an error. It is reported through
ReconcileResult.status == ResourceStatus.ABSENT.
"""

from __future__ import annotations


class EncryptionSettingsError(Exception):
    """Base class for all reconciler errors."""

    pass


class MalformedIdentifier(EncryptionSettingsError):
    """Raised when a resource ID does not match the ARM ID grammar."""

    def __init__(self, identifier: str, reason: str) -> None:
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"Malformed resource ID {identifier!r}: {reason}")


class KeyVaultLookupError(EncryptionSettingsError):
    """Raised when the vault URI cannot be resolved from a Key Vault ID."""

    def __init__(self, key_vault_id: str, cause: BaseException | str) -> None:
        self.key_vault_id = key_vault_id
        self.cause = cause
        super().__init__(f"Error looking up Key Vault URI from id {key_vault_id!r}: {cause}")


class RemoteWriteError(EncryptionSettingsError):
    """Raised when the storage account update call fails."""

    def __init__(self, account_name: str, operation: str, cause: BaseException) -> None:
        self.account_name = account_name
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"Error updating encryption of Storage Account {account_name!r} "
            f"during {operation}: {cause}"
        )


class RemoteReadError(EncryptionSettingsError):
    """Raised when reading storage account properties fails (other than not-found)."""

    def __init__(self, account_name: str, operation: str, cause: BaseException) -> None:
        self.account_name = account_name
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"Error reading the state of Storage Account {account_name!r} "
            f"during {operation}: {cause}"
        )


class Cancelled(EncryptionSettingsError):
    """Raised when an operation is aborted by its deadline or a cancel request.

    Remote calls already issued may have taken effect; no further call is
    made once this is raised.
    """

    def __init__(self, operation: str, resource: str, reason: str) -> None:
        self.operation = operation
        self.resource = resource
        self.reason = reason
        super().__init__(f"{operation} of {resource!r} cancelled: {reason}")
