"""Configuration management with validation.

All bounds are checked at load time so a misconfigured reconciler fails
before it issues any remote call.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_CREATE_TIMEOUT_SECONDS = 600
MAX_CREATE_TIMEOUT_SECONDS = 3600

# Removal can cascade through the cluster and takes longer to settle
DEFAULT_DELETE_TIMEOUT_SECONDS = 900
MAX_DELETE_TIMEOUT_SECONDS = 7200

DEFAULT_POLL_INTERVAL_SECONDS = 5
MIN_POLL_INTERVAL_SECONDS = 1
MAX_POLL_INTERVAL_SECONDS = 60

DEFAULT_MAX_CONCURRENT_RECONCILES = 4
MAX_CONCURRENT_RECONCILES = 32

DEFAULT_MAX_API_RETRIES = 3
MAX_API_RETRIES = 10

DEFAULT_MANIFEST_PATH = "/manifests/associations.yaml"
MAX_MANIFEST_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max manifest

# Input validation patterns
VALID_REGION_PATTERN = r"^[a-z]{2}(-[a-z]+)+-\d$"
VALID_ENDPOINT_PATTERN = r"^https?://\S+$"


@dataclass(frozen=True)
class Config:
    """Reconciler configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Required fields
    region: str

    # Remote API
    endpoint_url: str | None = None
    max_api_retries: int = DEFAULT_MAX_API_RETRIES

    # Paths
    manifest_path: Path = field(default_factory=lambda: Path(DEFAULT_MANIFEST_PATH))

    # Timing
    create_timeout_seconds: int = DEFAULT_CREATE_TIMEOUT_SECONDS
    delete_timeout_seconds: int = DEFAULT_DELETE_TIMEOUT_SECONDS
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    poll_jitter_seconds: float = 0.0

    # Behavior
    max_concurrent_reconciles: int = DEFAULT_MAX_CONCURRENT_RECONCILES
    enable_audit_logging: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.region:
            errors.append("AWS_REGION is required")
        elif not re.match(VALID_REGION_PATTERN, self.region):
            errors.append(f"AWS_REGION must be a valid AWS region: {self.region}")

        if self.endpoint_url is not None and not re.match(
            VALID_ENDPOINT_PATTERN, self.endpoint_url
        ):
            errors.append(f"RDS_ENDPOINT_URL must be an http(s) URL: {self.endpoint_url}")

        if not (1 <= self.create_timeout_seconds <= MAX_CREATE_TIMEOUT_SECONDS):
            errors.append(
                f"CREATE_TIMEOUT must be between 1 and {MAX_CREATE_TIMEOUT_SECONDS} seconds"
            )

        if not (1 <= self.delete_timeout_seconds <= MAX_DELETE_TIMEOUT_SECONDS):
            errors.append(
                f"DELETE_TIMEOUT must be between 1 and {MAX_DELETE_TIMEOUT_SECONDS} seconds"
            )

        if not (
            MIN_POLL_INTERVAL_SECONDS <= self.poll_interval_seconds <= MAX_POLL_INTERVAL_SECONDS
        ):
            errors.append(
                f"POLL_INTERVAL must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS} seconds"
            )

        if not (0 <= self.poll_jitter_seconds <= self.poll_interval_seconds):
            errors.append("POLL_JITTER must be between 0 and POLL_INTERVAL")

        if not (1 <= self.max_concurrent_reconciles <= MAX_CONCURRENT_RECONCILES):
            errors.append(
                f"MAX_CONCURRENT_RECONCILES must be between 1 and {MAX_CONCURRENT_RECONCILES}"
            )

        if not (0 <= self.max_api_retries <= MAX_API_RETRIES):
            errors.append(f"MAX_API_RETRIES must be between 0 and {MAX_API_RETRIES}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            AWS_REGION: Region of the DB clusters (falls back to AWS_DEFAULT_REGION)
            RDS_ENDPOINT_URL: Override for the RDS endpoint (e.g. LocalStack)
            MANIFEST_PATH: Path to the association manifest YAML
            CREATE_TIMEOUT: Seconds to wait for an association to become ACTIVE (default: 600)
            DELETE_TIMEOUT: Seconds to wait for an association to disappear (default: 900)
            POLL_INTERVAL: Seconds between state lookups (default: 5)
            POLL_JITTER: Max random seconds added to each poll sleep (default: 0)
            MAX_CONCURRENT_RECONCILES: Parallel reconciles over distinct keys (default: 4)
            MAX_API_RETRIES: botocore retry attempts per call (default: 3)
            ENABLE_AUDIT_LOGGING: Emit a provenance record per operation (default: true)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            if value in ("true", "1", "yes"):
                return True
            if value in ("false", "0", "no"):
                return False
            raise ConfigurationError(f"{key} must be a boolean: {value}")

        return cls(
            region=os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION", ""),
            endpoint_url=os.environ.get("RDS_ENDPOINT_URL") or None,
            max_api_retries=get_int("MAX_API_RETRIES", DEFAULT_MAX_API_RETRIES),
            manifest_path=Path(os.environ.get("MANIFEST_PATH", DEFAULT_MANIFEST_PATH)),
            create_timeout_seconds=get_int("CREATE_TIMEOUT", DEFAULT_CREATE_TIMEOUT_SECONDS),
            delete_timeout_seconds=get_int("DELETE_TIMEOUT", DEFAULT_DELETE_TIMEOUT_SECONDS),
            poll_interval_seconds=get_int("POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS),
            poll_jitter_seconds=get_float("POLL_JITTER", 0.0),
            max_concurrent_reconciles=get_int(
                "MAX_CONCURRENT_RECONCILES", DEFAULT_MAX_CONCURRENT_RECONCILES
            ),
            enable_audit_logging=get_bool("ENABLE_AUDIT_LOGGING", True),
        )
