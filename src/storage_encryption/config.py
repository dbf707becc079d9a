"""Runtime settings for the encryption settings reconciler.

Timeouts and identity settings are validated at load time so that a bad
environment fails before any Azure API call is made.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import Enum


class Operation(str, Enum):
    """Operations exposed by the reconciler."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    IMPORT = "import"


class ConfigurationError(Exception):
    """One or more settings are missing or out of range."""

    pass


# Per-operation timeouts, in seconds
DEFAULT_CREATE_TIMEOUT_SECONDS = 30 * 60
DEFAULT_READ_TIMEOUT_SECONDS = 5 * 60
DEFAULT_UPDATE_TIMEOUT_SECONDS = 30 * 60
DEFAULT_DELETE_TIMEOUT_SECONDS = 30 * 60
MIN_TIMEOUT_SECONDS = 10
MAX_TIMEOUT_SECONDS = 2 * 60 * 60

# Spec files larger than this are rejected unread
MAX_SPEC_FILE_SIZE_BYTES = 64 * 1024

# Lowercase GUID
VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"


@dataclass(frozen=True)
class Config:
    """Settings shared by every reconciler operation.

    Every problem found at construction is reported in a single
    ConfigurationError.
    """

    # Subscription the storage client is bound to
    subscription_id: str

    # User-assigned managed identity; None uses the system-assigned identity
    managed_identity_client_id: str | None = None

    # Timeouts
    create_timeout_seconds: int = DEFAULT_CREATE_TIMEOUT_SECONDS
    read_timeout_seconds: int = DEFAULT_READ_TIMEOUT_SECONDS
    update_timeout_seconds: int = DEFAULT_UPDATE_TIMEOUT_SECONDS
    delete_timeout_seconds: int = DEFAULT_DELETE_TIMEOUT_SECONDS

    # Emit structured audit events for key source changes
    enable_audit_logging: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.subscription_id:
            errors.append("AZURE_SUBSCRIPTION_ID is required")
        elif not re.match(VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()):
            errors.append(f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}")

        for name, value in (
            ("CREATE_TIMEOUT", self.create_timeout_seconds),
            ("READ_TIMEOUT", self.read_timeout_seconds),
            ("UPDATE_TIMEOUT", self.update_timeout_seconds),
            ("DELETE_TIMEOUT", self.delete_timeout_seconds),
        ):
            if not (MIN_TIMEOUT_SECONDS <= value <= MAX_TIMEOUT_SECONDS):
                errors.append(
                    f"{name} must be between {MIN_TIMEOUT_SECONDS} "
                    f"and {MAX_TIMEOUT_SECONDS} seconds"
                )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    def timeout_for(self, operation: Operation) -> int:
        """Return the timeout in seconds for an operation.

        Import shares the read timeout.
        """
        match operation:
            case Operation.CREATE:
                return self.create_timeout_seconds
            case Operation.UPDATE:
                return self.update_timeout_seconds
            case Operation.DELETE:
                return self.delete_timeout_seconds
            case Operation.READ | Operation.IMPORT:
                return self.read_timeout_seconds
            case _:
                raise ValueError(f"Unsupported operation: {operation}")

    @classmethod
    def from_env(cls) -> Config:
        """Build a Config from the process environment.

        Environment Variables:
            AZURE_SUBSCRIPTION_ID: Subscription of the storage accounts
            AZURE_MANAGED_IDENTITY_CLIENT_ID: Client ID of a user-assigned identity
            CREATE_TIMEOUT: Timeout for create in seconds (default: 1800)
            READ_TIMEOUT: Timeout for read and import in seconds (default: 300)
            UPDATE_TIMEOUT: Timeout for update in seconds (default: 1800)
            DELETE_TIMEOUT: Timeout for delete in seconds (default: 1800)
            ENABLE_AUDIT_LOGGING: Enable audit events (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID", ""),
            managed_identity_client_id=os.environ.get("AZURE_MANAGED_IDENTITY_CLIENT_ID") or None,
            create_timeout_seconds=get_int("CREATE_TIMEOUT", DEFAULT_CREATE_TIMEOUT_SECONDS),
            read_timeout_seconds=get_int("READ_TIMEOUT", DEFAULT_READ_TIMEOUT_SECONDS),
            update_timeout_seconds=get_int("UPDATE_TIMEOUT", DEFAULT_UPDATE_TIMEOUT_SECONDS),
            delete_timeout_seconds=get_int("DELETE_TIMEOUT", DEFAULT_DELETE_TIMEOUT_SECONDS),
            enable_audit_logging=get_bool("ENABLE_AUDIT_LOGGING", True),
        )
