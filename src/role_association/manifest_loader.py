"""Manifest file loading with validation.

SECURITY: File size is checked before reading. Input validation is
performed at the boundary.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config import MAX_MANIFEST_FILE_SIZE_BYTES
from .models import AssociationManifest

logger = logging.getLogger(__name__)


class ManifestLoadError(Exception):
    """Raised when manifest loading or validation fails."""

    pass


def load_manifest(manifest_path: Path) -> AssociationManifest:
    """Load and validate an association manifest from YAML.

    Both a flat document (``associations: [...]``) and a Kubernetes-style
    wrapper (``apiVersion`` / ``kind`` / ``spec``) are accepted.

    Raises:
        ManifestLoadError: If the manifest cannot be loaded or fails validation.
    """
    if not manifest_path.exists():
        raise ManifestLoadError(f"Manifest file not found: {manifest_path}")

    try:
        file_size = manifest_path.stat().st_size
    except OSError as e:
        raise ManifestLoadError(f"Failed to stat manifest file {manifest_path}: {e}") from e

    if file_size > MAX_MANIFEST_FILE_SIZE_BYTES:
        raise ManifestLoadError(
            f"Manifest file exceeds maximum size of {MAX_MANIFEST_FILE_SIZE_BYTES} bytes: "
            f"{manifest_path}"
        )

    try:
        content = manifest_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestLoadError(f"Failed to read manifest file {manifest_path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ManifestLoadError(f"Invalid YAML in {manifest_path}: {e}") from e

    if raw_data is None:
        raw_data = {}
    if not isinstance(raw_data, dict):
        raise ManifestLoadError(f"Manifest file must contain a YAML mapping: {manifest_path}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        manifest_data = raw_data.get("spec") or {}
        if not isinstance(manifest_data, dict):
            raise ManifestLoadError(f"Spec section must be a mapping: {manifest_path}")
    else:
        manifest_data = raw_data

    try:
        manifest = AssociationManifest.model_validate(manifest_data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}" if loc else f"  - {msg}")

        error_list = "\n".join(errors)
        raise ManifestLoadError(f"Validation failed for {manifest_path}:\n{error_list}") from e

    logger.info(
        "Loaded manifest from %s (%d associations)",
        manifest_path,
        len(manifest.associations),
    )
    return manifest
