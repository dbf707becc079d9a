"""Encryption settings spec loading with validation.

SECURITY: File reads enforce a size limit. Input validation is performed
at the boundary by the pydantic models.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .models import EncryptionSettings, EncryptionSettingsSpec

logger = logging.getLogger(__name__)

SPEC_KIND = "StorageAccountEncryptionSettings"


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise SpecLoadError(f"Spec file not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat spec file {path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read spec file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec file must contain a YAML mapping: {path}")

    # Kubernetes-style wrapper: apiVersion, kind, metadata, spec
    if "apiVersion" in raw_data and "spec" in raw_data:
        kind = raw_data.get("kind")
        if kind is not None and kind != SPEC_KIND:
            raise SpecLoadError(f"Unsupported kind {kind!r} in {path}, expected {SPEC_KIND}")
        spec_data = raw_data.get("spec", {})
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {path}")
        return spec_data

    return raw_data


def load_spec(path: Path) -> EncryptionSettingsSpec:
    """Load and validate an encryption settings spec from YAML.

    Args:
        path: Path to the spec file.

    Returns:
        Validated spec instance.

    Raises:
        SpecLoadError: If the spec cannot be loaded or fails validation.
    """
    spec_data = _read_yaml_mapping(path)

    try:
        spec = EncryptionSettingsSpec.model_validate(spec_data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {path}:\n{error_list}") from e

    logger.info("Loaded encryption settings spec from %s", path)
    return spec


def load_declared(path: Path) -> EncryptionSettings:
    """Load a spec file and convert it to the declared-state record."""
    return load_spec(path).to_declared()


def dump_state(state: dict[str, Any]) -> str:
    """Render a state document as YAML."""
    return yaml.safe_dump(state, sort_keys=False, default_flow_style=False)
