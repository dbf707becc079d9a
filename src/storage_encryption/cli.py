"""Storage account encryption settings CLI (sae).

Runs one reconciler operation per invocation. Declarations are read from
YAML spec files; resulting state is written to stdout as YAML so that the
caller (a state store, a pipeline step) can persist it.

Usage:
    sae apply spec.yaml                 # Create or update encryption settings
    sae apply spec.yaml --handle H      # Update settings recorded under handle H
    sae plan spec.yaml                  # Show the update payload without writing
    sae read spec.yaml                  # Refresh state from the storage account
    sae delete spec.yaml                # Revert to platform-managed keys
    sae import <storage-account-id>     # Rebuild a declaration from an account
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click

from .config import Config, ConfigurationError
from .errors import EncryptionSettingsError
from .main import setup_logging
from .models import EncryptionSettings
from .reconciler import EncryptionSettingsReconciler, ReconcileResult
from .security import SecretlessViolationError
from .spec_loader import SpecLoadError, dump_state, load_declared

T = TypeVar("T")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class SecurityViolation(click.ClickException):
    """Credential secrets detected in the environment."""

    exit_code = 2


def _get_reconciler(ctx: click.Context) -> EncryptionSettingsReconciler:
    """Return the reconciler for this invocation, building it on first use."""
    reconciler = ctx.obj.get("reconciler")
    if reconciler is not None:
        return reconciler

    from .clients import build_reconciler

    try:
        config = Config.from_env()
        reconciler = build_reconciler(config)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    except SecretlessViolationError as e:
        raise SecurityViolation(str(e)) from e

    ctx.obj["reconciler"] = reconciler
    return reconciler


def _load(spec_file: Path) -> EncryptionSettings:
    try:
        return load_declared(spec_file)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except EncryptionSettingsError as e:
        raise click.ClickException(str(e)) from e


def _result_document(result: ReconcileResult) -> dict[str, Any]:
    return {
        "operation": result.operation.value,
        "status": result.status.value,
        "handle": result.handle,
        "state": result.state.to_state_dict() if result.state is not None else None,
    }


def _emit(result: ReconcileResult) -> None:
    click.echo(dump_state(_result_document(result)), nl=False)


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="sae")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log level for JSON logs on stderr.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str) -> None:
    """Storage account encryption settings reconciler (sae).

    \b
    Configuration comes from the environment:
        AZURE_SUBSCRIPTION_ID              Subscription of the storage accounts
        AZURE_MANAGED_IDENTITY_CLIENT_ID   User-assigned identity (optional)
        CREATE_TIMEOUT / READ_TIMEOUT / UPDATE_TIMEOUT / DELETE_TIMEOUT
    """
    ctx.ensure_object(dict)
    if ctx.obj.get("configure_logging", True):
        setup_logging(log_level)


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--handle", default=None, help="Handle recorded by a previous apply.")
@click.pass_context
def apply(ctx: click.Context, spec_file: Path, handle: str | None) -> None:
    """Create or update encryption settings from SPEC_FILE."""
    declared = _load(spec_file)
    reconciler = _get_reconciler(ctx)
    result = _run(reconciler.create_or_update(declared, existing_handle=handle))
    _emit(result)


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def plan(ctx: click.Context, spec_file: Path) -> None:
    """Print the update payload for SPEC_FILE without writing it."""
    declared = _load(spec_file)
    reconciler = _get_reconciler(ctx)
    payload = _run(reconciler.plan(declared))
    click.echo(json.dumps(payload.serialize(), indent=2, sort_keys=True))


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def read(ctx: click.Context, spec_file: Path) -> None:
    """Refresh encryption settings state for SPEC_FILE."""
    declared = _load(spec_file)
    reconciler = _get_reconciler(ctx)
    _emit(_run(reconciler.read(declared)))


@cli.command()
@click.argument("spec_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def delete(ctx: click.Context, spec_file: Path) -> None:
    """Revert the account in SPEC_FILE to platform-managed keys."""
    declared = _load(spec_file)
    reconciler = _get_reconciler(ctx)
    _emit(_run(reconciler.delete(declared)))


@cli.command(name="import")
@click.argument("handle")
@click.pass_context
def import_(ctx: click.Context, handle: str) -> None:
    """Rebuild a declaration from the storage account in HANDLE."""
    reconciler = _get_reconciler(ctx)
    result = _run(reconciler.import_state(handle))
    _emit(result)
    if result.state is not None and result.state.key_vault is not None:
        click.echo(
            "note: keyVaultId and keyVaultPolicyId cannot be imported; "
            "add them to the declaration",
            err=True,
        )
