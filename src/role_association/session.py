"""Credential enforcement and RDS client construction.

The reconciler only ever authenticates with role-based credentials resolved
by the default boto3 credential chain (instance profile, IRSA web identity,
SSO profile). Static long-lived access keys in the environment are refused.

SECURITY INVARIANTS:
1. AWS_SECRET_ACCESS_KEY / AWS_ACCESS_KEY_ID must never be present in the environment
2. get_rds_client() is the ONLY way to obtain an API client in this codebase
"""

from __future__ import annotations

import logging
import os
from typing import Any

import boto3
from botocore.config import Config as BotoConfig

from .config import Config

logger = logging.getLogger(__name__)

# Environment variables that indicate static credentials
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
)

STATIC_CREDENTIALS_MESSAGE = """
╔══════════════════════════════════════════════════════════════════════════════╗
║                         SECURITY VIOLATION DETECTED                          ║
╠══════════════════════════════════════════════════════════════════════════════╣
║  This reconciler only accepts role-based AWS credentials.                    ║
║                                                                              ║
║  Detected: {env_var}                                                         ║
║                                                                              ║
║  RESOLUTION:                                                                 ║
║  1. Remove static access keys from the environment                           ║
║  2. Run under an instance profile, IRSA web identity or an SSO profile       ║
║  3. Grant that role rds:AddRoleToDBCluster, rds:RemoveRoleFromDBCluster,     ║
║     rds:DescribeDBClusters and iam:PassRole on the associated roles          ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""


class StaticCredentialsError(Exception):
    """Raised when static AWS credentials are found in the environment.

    This is a fatal security error; the reconciler must not start.
    """

    pass


def enforce_role_based_credentials() -> None:
    """Refuse to continue when static credentials are set in the environment.

    Raises:
        StaticCredentialsError: If any forbidden credential variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Static credentials detected",
                extra={
                    "security_event": "credential_detected",
                    "env_var": env_var,
                    "action": "startup_blocked",
                },
            )
            raise StaticCredentialsError(STATIC_CREDENTIALS_MESSAGE.format(env_var=env_var))

    logger.info(
        "Role-based credentials verified",
        extra={"security_event": "role_credentials_verified"},
    )


def get_rds_client(config: Config) -> Any:
    """Build the boto3 RDS client used by the association client.

    Args:
        config: Validated reconciler configuration.

    Returns:
        A boto3 RDS client with standard-mode retries.

    Raises:
        StaticCredentialsError: If static credentials are present.
    """
    enforce_role_based_credentials()

    client_kwargs: dict[str, Any] = {
        "service_name": "rds",
        "region_name": config.region,
        "config": BotoConfig(
            retries={"mode": "standard", "max_attempts": config.max_api_retries + 1},
        ),
    }
    if config.endpoint_url:
        client_kwargs["endpoint_url"] = config.endpoint_url

    logger.info(
        "RDS client initialized",
        extra={"region": config.region, "endpoint": config.endpoint_url},
    )
    return boto3.client(**client_kwargs)
