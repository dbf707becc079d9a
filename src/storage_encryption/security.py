"""Credential acquisition and audit events.

Storage and Key Vault management calls authenticate with a Managed
Identity only:
1. Service principal secrets, certificates and passwords must never be
   present in the environment
2. ManagedIdentityCredential is the ONLY credential type handed to clients
3. Every change of an account's key source is recorded as an audit event
"""

from __future__ import annotations

import logging
import os

from azure.identity import ManagedIdentityCredential

logger = logging.getLogger(__name__)

# Environment variables that indicate credential leakage
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
)

SECRETLESS_VIOLATION_MESSAGE = (
    "SECURITY VIOLATION: {env_var} is set. Encryption settings are managed "
    "with a Managed Identity only; remove credential environment variables "
    "and grant the identity 'Storage Account Contributor' on the account and "
    "'Reader' on the Key Vault."
)


class SecretlessViolationError(Exception):
    """A credential secret was found where only a Managed Identity may be used."""


def _leaked_credential_variable() -> str | None:
    return next((name for name in FORBIDDEN_CREDENTIAL_ENV_VARS if os.environ.get(name)), None)


def _masked(client_id: str) -> str:
    return client_id if len(client_id) <= 8 else f"{client_id[:8]}..."


def enforce_secretless_architecture() -> None:
    """Refuse to run when credential secrets are present in the environment.

    Empty variables are ignored; AZURE_CLIENT_ID only selects an identity
    and is allowed.

    Raises:
        SecretlessViolationError: On the first non-empty forbidden variable.
    """
    leaked = _leaked_credential_variable()
    if leaked is None:
        logger.debug("No credential secrets in environment")
        return

    logger.critical(
        "Credential secret in environment, refusing to authenticate",
        extra={"security_event": "credential_detected", "env_var": leaked},
    )
    raise SecretlessViolationError(SECRETLESS_VIOLATION_MESSAGE.format(env_var=leaked))


def get_managed_identity_credential(
    client_id: str | None = None,
) -> ManagedIdentityCredential:
    """Return the credential used for every management call.

    A client_id selects a user-assigned identity; without one the
    system-assigned identity of the host is used.
    """
    enforce_secretless_architecture()

    if not client_id:
        logger.info("Authenticating with system-assigned identity")
        return ManagedIdentityCredential()

    logger.info(
        "Authenticating with user-assigned identity", extra={"client_id": _masked(client_id)}
    )
    return ManagedIdentityCredential(client_id=client_id)


def log_security_audit_event(
    event_type: str,
    storage_account_id: str,
    action: str,
    key_source: str | None = None,
    key_vault_uri: str | None = None,
    result: str | None = None,
) -> None:
    """Log an encryption-related audit event.

    Args:
        event_type: Type of event (encryption_update, encryption_revert).
        storage_account_id: Storage account whose encryption changed.
        action: Operation that produced the event.
        key_source: Key source written to the account.
        key_vault_uri: Vault holding the customer-managed key, if any.
        result: Outcome (success, failure).
    """
    logger.info(
        f"Security audit: {event_type}",
        extra={
            "security_audit": True,
            "event_type": event_type,
            "target_resource": storage_account_id,
            "action": action,
            "key_source": key_source,
            "key_vault_uri": key_vault_uri,
            "result": result,
        },
    )
