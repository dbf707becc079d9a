"""Azure resource ID parsing and encryption settings handle derivation.

Azure resource IDs follow the pattern:
/subscriptions/{sub}/resourceGroups/{rg}/providers/{namespace}/{type}/{name}[/{type}/{name}...]

The encryption settings are a facet of the storage account, not a separate
ARM object, so their handle is synthesized by suffixing the account ID.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .errors import MalformedIdentifier

HANDLE_SUFFIX = "encryptionSettings"

STORAGE_ACCOUNTS_SEGMENT = "storageAccounts"
KEY_VAULTS_SEGMENT = "vaults"


@dataclass(frozen=True)
class ResourceId:
    """Structural parts of an ARM resource ID.

    Attributes:
        subscription_id: Subscription GUID segment.
        resource_group: Resource group name, or None for subscription-level IDs.
        provider: Provider namespace (e.g., Microsoft.Storage), if present.
        path: Remaining type/name pairs keyed by type (e.g., {"storageAccounts": "acct1"}).
    """

    subscription_id: str
    resource_group: str | None = None
    provider: str | None = None
    path: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StorageAccountRef:
    """The parts of a storage account ID the storage API is keyed by."""

    subscription_id: str
    resource_group: str
    account_name: str


@dataclass(frozen=True)
class KeyVaultId:
    """The parts of a Key Vault ID the vault lookup is keyed by."""

    subscription_id: str
    resource_group: str
    vault_name: str


def parse_resource_id(value: str) -> ResourceId:
    """Parse an ARM resource ID into its components.

    No network access is performed.

    Args:
        value: The resource ID string.

    Returns:
        Parsed ResourceId.

    Raises:
        MalformedIdentifier: If the ID does not match the grammar.
    """
    if not isinstance(value, str) or not value:
        raise MalformedIdentifier(str(value), "resource ID is empty")

    if not value.startswith("/"):
        raise MalformedIdentifier(value, "resource ID must start with '/'")

    components = value.strip("/").split("/")
    if any(not c for c in components):
        raise MalformedIdentifier(value, "resource ID contains an empty segment")

    # Segments come in key/value pairs
    if len(components) % 2 != 0:
        raise MalformedIdentifier(value, "number of ID segments is not divisible by 2")

    pairs = [(components[i], components[i + 1]) for i in range(0, len(components), 2)]

    key, subscription_id = pairs[0]
    if key.lower() != "subscriptions":
        raise MalformedIdentifier(value, "resource ID must start with a subscriptions segment")

    resource_group: str | None = None
    provider: str | None = None
    path: dict[str, str] = {}

    for key, val in pairs[1:]:
        lowered = key.lower()
        if lowered == "resourcegroups" and resource_group is None and provider is None:
            resource_group = val
        elif lowered == "providers" and provider is None:
            provider = val
        else:
            path[key] = val

    return ResourceId(
        subscription_id=subscription_id,
        resource_group=resource_group,
        provider=provider,
        path=path,
    )


def _require_named(value: str, segment: str) -> tuple[str, str, str]:
    """Return (subscription, resource group, name) for a named resource ID."""
    parsed = parse_resource_id(value)

    resource_group = parsed.resource_group
    if not resource_group:
        raise MalformedIdentifier(value, "resource ID has no resourceGroups segment")

    name = parsed.path.get(segment)
    if not name:
        raise MalformedIdentifier(value, f"resource ID has no {segment} segment")

    return parsed.subscription_id, resource_group, name


def parse_storage_account_id(value: str) -> StorageAccountRef:
    """Parse a storage account ID into resource group and account name.

    Raises:
        MalformedIdentifier: If the resource group or account name is missing.
    """
    subscription_id, resource_group, name = _require_named(value, STORAGE_ACCOUNTS_SEGMENT)
    return StorageAccountRef(
        subscription_id=subscription_id,
        resource_group=resource_group,
        account_name=name,
    )


def parse_key_vault_id(value: str) -> KeyVaultId:
    """Parse a Key Vault ID into subscription, resource group and vault name.

    Raises:
        MalformedIdentifier: If the resource group or vault name is missing.
    """
    subscription_id, resource_group, name = _require_named(value, KEY_VAULTS_SEGMENT)
    return KeyVaultId(
        subscription_id=subscription_id,
        resource_group=resource_group,
        vault_name=name,
    )


def derive_handle(storage_account_id: str) -> str:
    """Build the encryption settings handle for a storage account ID."""
    return f"{storage_account_id}/{HANDLE_SUFFIX}"


def storage_account_id_from_handle(handle: str) -> str:
    """Return the storage account portion of a handle.

    Accepts both the bare storage account ID and the suffixed handle.
    Trailing slashes are dropped so the result is canonical.
    """
    trimmed = handle.rstrip("/")
    suffix = f"/{HANDLE_SUFFIX}"
    if trimmed.lower().endswith(suffix.lower()):
        trimmed = trimmed[: -len(suffix)].rstrip("/")
    return trimmed
