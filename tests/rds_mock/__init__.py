"""RDS API Mock for Integration Testing.

In-memory DB clusters with scripted eventual consistency and error
injection, so the reconciler can be exercised end to end without AWS.

Usage:
    from rds_mock import MockRdsContext

    with MockRdsContext(clusters=["cluster-A"], pending_describes=2) as ctx:
        client = RdsAssociationClient(get_rds_client(config))
        reconciler = AssociationReconciler(client, ...)
        await reconciler.create(key)

        assert ctx.state.call_count("DescribeDBClusters") == 3
"""

from .client import MockRdsClient, make_client_error
from .context import MockRdsContext
from .state import (
    STATUS_ACTIVE,
    STATUS_DELETING,
    STATUS_PENDING,
    MockApiFault,
    MockRdsState,
    MockRoleAssociation,
)

__all__ = [
    "STATUS_ACTIVE",
    "STATUS_DELETING",
    "STATUS_PENDING",
    "MockApiFault",
    "MockRdsClient",
    "MockRdsContext",
    "MockRdsState",
    "MockRoleAssociation",
    "make_client_error",
]
