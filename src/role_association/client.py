"""Remote association calls against the RDS API.

AssociationClient is the capability the reader and reconciler depend on;
RdsAssociationClient implements it over a boto3 RDS client. boto3 is
blocking, so every call runs in the default executor to keep the event loop
free while other keys are being reconciled.

botocore errors are translated into the package's error taxonomy here and
nowhere else.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    AssociationExistsError,
    AssociationNotFoundError,
    ParentNotFoundError,
    RemoteAPIError,
    TransientAPIError,
)
from .records import AssociationKey, AssociationRecord, AssociationStatus

logger = logging.getLogger(__name__)

# RDS error codes with a dedicated meaning for associations
ERR_CLUSTER_NOT_FOUND = "DBClusterNotFoundFault"
ERR_ROLE_ALREADY_EXISTS = "DBClusterRoleAlreadyExists"
ERR_ROLE_NOT_FOUND = "DBClusterRoleNotFound"

TRANSIENT_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "ServiceUnavailable",
        "InternalFailure",
        "RequestTimeout",
    }
)


class AssociationClient(Protocol):
    """Remote calls the reconciler needs from the cloud API."""

    async def add_association(
        self, parent_id: str, member_id: str, feature_name: str | None = None
    ) -> None: ...

    async def remove_association(
        self, parent_id: str, member_id: str, feature_name: str | None = None
    ) -> None: ...

    async def describe_associations(self, parent_id: str) -> list[AssociationRecord]: ...


def translate_client_error(error: ClientError, operation: str) -> RemoteAPIError:
    """Map a botocore ClientError onto the association error taxonomy."""
    err = error.response.get("Error", {})
    code = err.get("Code", "")
    message = err.get("Message") or str(error)
    status_code = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
    text = f"{operation} failed ({code}): {message}"

    if code == ERR_CLUSTER_NOT_FOUND:
        return ParentNotFoundError(text, code=code)
    if code == ERR_ROLE_ALREADY_EXISTS:
        return AssociationExistsError(text, code=code)
    if code == ERR_ROLE_NOT_FOUND:
        return AssociationNotFoundError(text, code=code)
    if code in TRANSIENT_ERROR_CODES or status_code >= 500:
        return TransientAPIError(text, code=code)
    return RemoteAPIError(text, code=code)


class RdsAssociationClient:
    """AssociationClient over the RDS DB cluster role APIs."""

    def __init__(self, rds_client: Any) -> None:
        """Initialize with a boto3 RDS client (see session.get_rds_client)."""
        self._rds = rds_client

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        method = getattr(self._rds, operation)
        try:
            return await loop.run_in_executor(None, functools.partial(method, **kwargs))
        except ClientError as e:
            raise translate_client_error(e, operation) from e
        except BotoCoreError as e:
            # Connection, endpoint and read-timeout failures
            raise TransientAPIError(f"{operation} failed: {e}") from e

    async def add_association(
        self, parent_id: str, member_id: str, feature_name: str | None = None
    ) -> None:
        params: dict[str, Any] = {"DBClusterIdentifier": parent_id, "RoleArn": member_id}
        if feature_name:
            params["FeatureName"] = feature_name

        logger.info(
            "Adding role to DB cluster",
            extra={"cluster": parent_id, "role_arn": member_id, "feature_name": feature_name},
        )
        await self._call("add_role_to_db_cluster", **params)

    async def remove_association(
        self, parent_id: str, member_id: str, feature_name: str | None = None
    ) -> None:
        params: dict[str, Any] = {"DBClusterIdentifier": parent_id, "RoleArn": member_id}
        if feature_name:
            params["FeatureName"] = feature_name

        logger.info(
            "Removing role from DB cluster",
            extra={"cluster": parent_id, "role_arn": member_id, "feature_name": feature_name},
        )
        await self._call("remove_role_from_db_cluster", **params)

    async def describe_associations(self, parent_id: str) -> list[AssociationRecord]:
        """List the roles associated with a DB cluster.

        Raises:
            ParentNotFoundError: If the cluster does not exist.
        """
        response = await self._call("describe_db_clusters", DBClusterIdentifier=parent_id)

        # RDS stores identifiers lowercased and matches them case-insensitively
        wanted = parent_id.lower()
        clusters = [
            c
            for c in response.get("DBClusters", [])
            if c.get("DBClusterIdentifier", "").lower() == wanted
        ]
        if not clusters:
            raise ParentNotFoundError(
                f"DB cluster {parent_id} not present in describe response",
                code=ERR_CLUSTER_NOT_FOUND,
            )

        records: list[AssociationRecord] = []
        for cluster in clusters:
            for role in cluster.get("AssociatedRoles", []):
                raw_status = role.get("Status")
                records.append(
                    AssociationRecord(
                        key=AssociationKey(parent_id=parent_id, member_id=role.get("RoleArn", "")),
                        status=AssociationStatus.from_raw(raw_status),
                        feature_name=role.get("FeatureName") or None,
                        raw_status=raw_status,
                    )
                )
        return records
