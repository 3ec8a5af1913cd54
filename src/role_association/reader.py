"""Remote state lookup for a single association."""

from __future__ import annotations

import logging

from .client import AssociationClient
from .errors import ParentNotFoundError
from .records import AssociationKey, AssociationRecord

logger = logging.getLogger(__name__)


class RemoteStateReader:
    """Looks up the current state of one association against the remote API.

    Every call is a fresh describe of the parent resource; nothing is cached.
    """

    def __init__(self, client: AssociationClient) -> None:
        self._client = client

    async def lookup(
        self,
        key: AssociationKey,
        *,
        feature_name: str | None = None,
        tolerate_missing_parent: bool = True,
    ) -> AssociationRecord | None:
        """Return the association record, or None when it is absent.

        Absence covers both a missing parent and a parent without this
        member; callers doing drift detection need not tell them apart.

        Args:
            key: Association to look up.
            feature_name: When set, only an entry for this feature matches.
            tolerate_missing_parent: When False, a missing parent raises
                ParentNotFoundError instead of returning None.

        Raises:
            ParentNotFoundError: Parent is gone and tolerate_missing_parent is False.
            TransientAPIError: Throttling or transport failure.
            RemoteAPIError: Any other API failure.
        """
        try:
            records = await self._client.describe_associations(key.parent_id)
        except ParentNotFoundError:
            if not tolerate_missing_parent:
                raise
            logger.debug("Parent resource not found", extra={"parent_id": key.parent_id})
            return None

        for record in records:
            if record.key.member_id != key.member_id:
                continue
            if feature_name and record.feature_name != feature_name:
                continue
            return record

        return None
