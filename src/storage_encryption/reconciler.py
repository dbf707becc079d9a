"""Reconciliation of storage account encryption settings.

This module implements the lifecycle of the encryption settings resource:
1. create/update: build the payload, write it, read the account back
2. read: project remote encryption state into the declared record
3. delete: revert the account to platform-managed keys (never removes it)
4. import: rebuild a declaration from an existing account

The encryption settings have no ARM identity of their own. They are a
facet of the storage account, addressed by a synthesized handle
(<storage_account_id>/encryptionSettings).

Each operation issues at most two sequential storage calls plus one Key
Vault lookup. Every call runs under a single per-operation deadline and
nothing new is issued once the deadline passes or the caller cancels.
No retries happen here; the Azure SDK pipeline owns retry policy.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeVar

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.mgmt.storage.models import StorageAccountUpdateParameters

from .collaborators import KeyVaultResolver, StorageAccountsApi
from .config import Config, Operation
from .defaults import revert_update
from .errors import Cancelled, KeyVaultLookupError, RemoteReadError, RemoteWriteError
from .models import EncryptionSettings, KeySelection
from .projection import from_wire_read, to_wire_update
from .resource_id import (
    StorageAccountRef,
    derive_handle,
    parse_storage_account_id,
    storage_account_id_from_handle,
)
from .security import log_security_audit_event
from .timeouts import OperationDeadline

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResourceStatus(str, Enum):
    """Whether the encryption settings exist after an operation."""

    PRESENT = "present"
    # Not an error: the caller drops its record
    ABSENT = "absent"


@dataclass
class ReconcileResult:
    """Result of a single reconciler operation."""

    operation: Operation
    status: ResourceStatus
    handle: str | None = None
    state: EncryptionSettings | None = None
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None

    @property
    def absent(self) -> bool:
        return self.status == ResourceStatus.ABSENT

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


def _key_source_name(payload: StorageAccountUpdateParameters) -> str | None:
    key_source = payload.encryption.key_source if payload.encryption else None
    if key_source is None:
        return None
    return getattr(key_source, "value", str(key_source))


class EncryptionSettingsReconciler:
    """Reconciles declared encryption settings against a storage account.

    The reconciler holds no state between calls. The declared record and
    handle are owned by the caller and passed in on every invocation.
    """

    def __init__(
        self,
        storage_accounts: StorageAccountsApi,
        key_vault_resolver: KeyVaultResolver,
        config: Config,
    ) -> None:
        """Initialize the reconciler.

        Args:
            storage_accounts: Storage accounts API (e.g., StorageManagementClient.storage_accounts).
            key_vault_resolver: Resolves Key Vault IDs to vault URIs.
            config: Validated configuration.
        """
        self._storage_accounts = storage_accounts
        self._key_vault_resolver = key_vault_resolver
        self._config = config

    @property
    def config(self) -> Config:
        """Get the reconciler configuration."""
        return self._config

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def plan(
        self,
        declared: EncryptionSettings,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> StorageAccountUpdateParameters:
        """Build the update payload for a declaration without writing it.

        Raises:
            MalformedIdentifier: If storage_account_id does not parse.
            KeyVaultLookupError: If the vault URI cannot be resolved.
            Cancelled: If the deadline passes or the caller cancels.
        """
        account = parse_storage_account_id(declared.storage_account_id)
        deadline = OperationDeadline.for_operation(
            self._config, Operation.READ, account.account_name, cancel_event
        )
        return await self._build_payload(declared, deadline)

    async def create_or_update(
        self,
        declared: EncryptionSettings,
        *,
        existing_handle: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ReconcileResult:
        """Write the declared encryption settings and refresh from remote.

        Re-issuing with an identical declaration produces an identical
        payload, so the call is safe to repeat.

        Args:
            declared: Desired encryption settings.
            existing_handle: Handle recorded by a previous call; selects the
                update timeout instead of the create timeout.
            cancel_event: Caller-owned event that aborts the operation.

        Returns:
            ReconcileResult with the handle and refreshed state, or ABSENT if
            the account disappeared before the read-back.

        Raises:
            MalformedIdentifier: If storage_account_id does not parse.
            KeyVaultLookupError: If the vault URI cannot be resolved.
            RemoteWriteError: If the update call fails.
            RemoteReadError: If the read-back fails.
            Cancelled: If the deadline passes or the caller cancels.
        """
        operation = Operation.CREATE if existing_handle is None else Operation.UPDATE
        result = ReconcileResult(operation=operation, status=ResourceStatus.ABSENT)

        account = parse_storage_account_id(declared.storage_account_id)
        deadline = OperationDeadline.for_operation(
            self._config, operation, account.account_name, cancel_event
        )

        payload = await self._build_payload(declared, deadline)
        await self._write(declared.storage_account_id, account, payload, deadline)

        handle = derive_handle(declared.storage_account_id)
        logger.info(
            "Storage account encryption updated",
            extra={
                "operation": operation.value,
                "storage_account": account.account_name,
                "key_source": _key_source_name(payload),
                "handle": handle,
            },
        )

        refreshed = await self._refresh(declared, account, deadline)
        result.end_time = datetime.now(UTC)
        if refreshed is None:
            return result

        result.status = ResourceStatus.PRESENT
        result.handle = handle
        result.state = refreshed
        return result

    async def read(
        self,
        declared: EncryptionSettings,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ReconcileResult:
        """Refresh the declared record from the storage account.

        Key Vault ID and access policy ID are carried forward from the
        declaration because the storage API does not return them.

        Returns:
            ReconcileResult with the refreshed state, or ABSENT if the
            storage account no longer exists.

        Raises:
            MalformedIdentifier: If storage_account_id does not parse.
            RemoteReadError: If the read fails for a reason other than not-found.
            Cancelled: If the deadline passes or the caller cancels.
        """
        result = ReconcileResult(operation=Operation.READ, status=ResourceStatus.ABSENT)

        account = parse_storage_account_id(declared.storage_account_id)
        deadline = OperationDeadline.for_operation(
            self._config, Operation.READ, account.account_name, cancel_event
        )

        refreshed = await self._refresh(declared, account, deadline)
        result.end_time = datetime.now(UTC)
        if refreshed is None:
            return result

        result.status = ResourceStatus.PRESENT
        result.handle = derive_handle(declared.storage_account_id)
        result.state = refreshed
        return result

    async def delete(
        self,
        declared: EncryptionSettings,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ReconcileResult:
        """Revert the storage account to platform-managed keys.

        The encryption settings are not a separate object, so deleting them
        means writing the default configuration back. The storage account
        is never deleted.

        Returns:
            ReconcileResult with status ABSENT.

        Raises:
            MalformedIdentifier: If storage_account_id does not parse.
            RemoteWriteError: If the update call fails, including when the
                storage account does not exist.
            Cancelled: If the deadline passes or the caller cancels.
        """
        result = ReconcileResult(operation=Operation.DELETE, status=ResourceStatus.ABSENT)

        account = parse_storage_account_id(declared.storage_account_id)
        deadline = OperationDeadline.for_operation(
            self._config, Operation.DELETE, account.account_name, cancel_event
        )

        payload = revert_update()
        await self._write(declared.storage_account_id, account, payload, deadline)
        logger.info(
            "Storage account encryption reverted to platform-managed keys",
            extra={"storage_account": account.account_name},
        )

        result.end_time = datetime.now(UTC)
        return result

    async def import_state(
        self,
        handle: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ReconcileResult:
        """Rebuild a declaration from an existing storage account.

        Args:
            handle: Storage account ID, with or without the
                /encryptionSettings suffix.

        Returns:
            ReconcileResult with the canonical handle and the reconstructed
            declaration, or ABSENT if the account does not exist. Key Vault
            ID and access policy ID cannot be recovered and are left empty.

        Raises:
            MalformedIdentifier: If the handle does not contain a storage account ID.
            RemoteReadError: If the read fails for a reason other than not-found.
            Cancelled: If the deadline passes or the caller cancels.
        """
        result = ReconcileResult(operation=Operation.IMPORT, status=ResourceStatus.ABSENT)

        storage_account_id = storage_account_id_from_handle(handle)
        account = parse_storage_account_id(storage_account_id)
        deadline = OperationDeadline.for_operation(
            self._config, Operation.IMPORT, account.account_name, cancel_event
        )

        declared = EncryptionSettings(storage_account_id=storage_account_id)
        refreshed = await self._refresh(declared, account, deadline)
        result.end_time = datetime.now(UTC)
        if refreshed is None:
            return result

        if refreshed.key_vault is not None:
            logger.warning(
                "Imported Key Vault key without keyVaultId and keyVaultPolicyId; "
                "set them in the declaration before the next apply",
                extra={"storage_account": account.account_name},
            )

        result.status = ResourceStatus.PRESENT
        result.handle = derive_handle(storage_account_id)
        result.state = refreshed
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _build_payload(
        self,
        declared: EncryptionSettings,
        deadline: OperationDeadline,
    ) -> StorageAccountUpdateParameters:
        """Resolve the vault URI if needed and project the declaration."""
        key_vault = declared.key_vault
        if key_vault is None or declared.key_selection != KeySelection.CUSTOMER_MANAGED:
            return to_wire_update(declared)

        key_vault_uri = await self._resolve_vault_uri(key_vault.key_vault_id, deadline)
        return to_wire_update(declared, key_vault_uri=key_vault_uri)

    async def _resolve_vault_uri(self, key_vault_id: str, deadline: OperationDeadline) -> str:
        if not key_vault_id:
            raise KeyVaultLookupError(key_vault_id, "keyVaultId is empty")

        try:
            return await self._execute_with_timeout(
                lambda: self._key_vault_resolver.base_url_from_id(key_vault_id),
                deadline,
                "Key Vault lookup",
            )
        except AzureError as e:
            raise KeyVaultLookupError(key_vault_id, e) from e

    async def _write(
        self,
        storage_account_id: str,
        account: StorageAccountRef,
        payload: StorageAccountUpdateParameters,
        deadline: OperationDeadline,
    ) -> None:
        """Issue the storage account update; a missing account is a write failure."""
        try:
            await self._execute_with_timeout(
                lambda: self._storage_accounts.update(
                    account.resource_group, account.account_name, payload
                ),
                deadline,
                "Storage account update",
            )
        except AzureError as e:
            logger.error(
                "Storage account update failed",
                extra={
                    "storage_account": account.account_name,
                    "operation": deadline.operation.value,
                    "error": str(e),
                },
            )
            self._audit(storage_account_id, deadline, payload, "failure")
            raise RemoteWriteError(account.account_name, deadline.operation.value, e) from e

        self._audit(storage_account_id, deadline, payload, "success")

    async def _refresh(
        self,
        declared: EncryptionSettings,
        account: StorageAccountRef,
        deadline: OperationDeadline,
    ) -> EncryptionSettings | None:
        """Read the account and project it onto declared.

        Returns:
            The refreshed record, or None if the account does not exist.
        """
        try:
            properties = await self._execute_with_timeout(
                lambda: self._storage_accounts.get_properties(
                    account.resource_group, account.account_name
                ),
                deadline,
                "Storage account read",
            )
        except ResourceNotFoundError:
            logger.info(
                "Storage account not found, encryption settings are absent",
                extra={"storage_account": account.account_name},
            )
            return None
        except AzureError as e:
            logger.error(
                "Storage account read failed",
                extra={
                    "storage_account": account.account_name,
                    "operation": deadline.operation.value,
                    "error": str(e),
                },
            )
            raise RemoteReadError(account.account_name, deadline.operation.value, e) from e

        key_vault_id = ""
        key_vault_policy_id = ""
        if declared.key_vault is not None:
            key_vault_id = declared.key_vault.key_vault_id
            key_vault_policy_id = declared.key_vault.key_vault_policy_id

        fragment = from_wire_read(
            getattr(properties, "encryption", None),
            key_vault_id=key_vault_id,
            key_vault_policy_id=key_vault_policy_id,
        )
        return fragment.apply_to(declared)

    async def _execute_with_timeout(
        self,
        call: Callable[[], T],
        deadline: OperationDeadline,
        operation_name: str,
    ) -> T:
        """Run a blocking SDK call on a daemon thread under the deadline.

        The call is abandoned (its result discarded) if the deadline passes
        or the cancel event is set while it is in flight. An abandoned call
        keeps no executor busy, so neither loop shutdown nor process exit
        waits for it.

        Raises:
            Cancelled: If cancelled before or during the call.
        """
        deadline.ensure_active()

        pending_call = _start_in_daemon_thread(call, operation_name)
        waiters: set[asyncio.Future[Any]] = {pending_call}

        cancel_waiter: asyncio.Future[Any] | None = None
        if deadline.cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(deadline.cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=deadline.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if pending_call in done:
            return pending_call.result()

        pending_call.cancel()
        if deadline.cancel_event is not None and deadline.cancel_event.is_set():
            reason = f"cancellation requested during {operation_name}"
        else:
            reason = f"{operation_name} exceeded deadline of {deadline.timeout_seconds:.0f}s"

        logger.error(
            "Remote call abandoned",
            extra={
                "operation": deadline.operation.value,
                "call": operation_name,
                "resource": deadline.resource,
                "reason": reason,
            },
        )
        raise Cancelled(deadline.operation.value, deadline.resource, reason)

    def _audit(
        self,
        storage_account_id: str,
        deadline: OperationDeadline,
        payload: StorageAccountUpdateParameters,
        outcome: str,
    ) -> None:
        if not self._config.enable_audit_logging:
            return

        key_vault_uri = None
        if payload.encryption is not None and payload.encryption.key_vault_properties is not None:
            key_vault_uri = payload.encryption.key_vault_properties.key_vault_uri

        if deadline.operation == Operation.DELETE:
            event_type = "encryption_revert"
        else:
            event_type = "encryption_update"

        log_security_audit_event(
            event_type=event_type,
            storage_account_id=storage_account_id,
            action=deadline.operation.value,
            key_source=_key_source_name(payload),
            key_vault_uri=key_vault_uri,
            result=outcome,
        )


def _start_in_daemon_thread(call: Callable[[], T], name: str) -> asyncio.Future[T]:
    """Run call on a daemon thread and return a future on the running loop."""
    loop = asyncio.get_running_loop()
    future: asyncio.Future[T] = loop.create_future()

    def settle(value: Any, error: Exception | None) -> None:
        if future.cancelled():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(value)

    def runner() -> None:
        try:
            value, error = call(), None
        except Exception as e:
            value, error = None, e
        try:
            loop.call_soon_threadsafe(settle, value, error)
        except RuntimeError:
            # Loop already closed; the caller gave up on this call
            pass

    threading.Thread(target=runner, name=f"sae: {name}", daemon=True).start()
    return future
