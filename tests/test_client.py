"""Tests for the RDS association client and botocore error translation."""

from __future__ import annotations

from typing import Any
from unittest import mock

import pytest
from botocore.exceptions import EndpointConnectionError
from rds_mock import STATUS_ACTIVE, MockRdsClient, MockRdsState, make_client_error

from role_association.client import (
    ERR_CLUSTER_NOT_FOUND,
    ERR_ROLE_ALREADY_EXISTS,
    ERR_ROLE_NOT_FOUND,
    RdsAssociationClient,
    translate_client_error,
)
from role_association.errors import (
    AssociationExistsError,
    AssociationNotFoundError,
    ParentNotFoundError,
    RemoteAPIError,
    TransientAPIError,
)
from role_association.records import AssociationStatus

ROLE_ARN = "arn:aws:iam::123456789012:role/s3-import"


class TestTranslateClientError:
    """Tests for translate_client_error()."""

    @pytest.mark.parametrize(
        "code,expected",
        [
            (ERR_CLUSTER_NOT_FOUND, ParentNotFoundError),
            (ERR_ROLE_ALREADY_EXISTS, AssociationExistsError),
            (ERR_ROLE_NOT_FOUND, AssociationNotFoundError),
            ("Throttling", TransientAPIError),
            ("RequestLimitExceeded", TransientAPIError),
            ("InvalidDBClusterStateFault", RemoteAPIError),
            ("AccessDenied", RemoteAPIError),
        ],
    )
    def test_code_mapping(self, code: str, expected: type[RemoteAPIError]) -> None:
        error = translate_client_error(
            make_client_error(code, "boom", "AddRoleToDBCluster"), "add_role_to_db_cluster"
        )

        assert type(error) is expected
        assert error.code == code
        assert "add_role_to_db_cluster failed" in str(error)

    def test_server_error_is_transient(self) -> None:
        error = translate_client_error(
            make_client_error("InternalError", "oops", "DescribeDBClusters", 503),
            "describe_db_clusters",
        )

        assert isinstance(error, TransientAPIError)
        assert error.retriable is True

    def test_non_transient_not_retriable(self) -> None:
        error = translate_client_error(
            make_client_error("AccessDenied", "no", "DescribeDBClusters", 403),
            "describe_db_clusters",
        )

        assert error.retriable is False


class TestRdsAssociationClient:
    """Tests for RdsAssociationClient against the mock RDS API."""

    @pytest.fixture
    def state(self) -> MockRdsState:
        state = MockRdsState()
        state.add_cluster("my-cluster")
        return state

    @pytest.fixture
    def client(self, state: MockRdsState) -> RdsAssociationClient:
        return RdsAssociationClient(MockRdsClient(state))

    @pytest.mark.asyncio
    async def test_add_passes_feature_name(
        self, client: RdsAssociationClient, state: MockRdsState
    ) -> None:
        await client.add_association("my-cluster", ROLE_ARN, "s3Import")

        role = state.get_role("my-cluster", ROLE_ARN)
        assert role is not None
        assert role.feature_name == "s3Import"

    @pytest.mark.asyncio
    async def test_add_omits_empty_feature_name(self) -> None:
        rds = mock.MagicMock()
        rds.add_role_to_db_cluster.return_value = {}
        client = RdsAssociationClient(rds)

        await client.add_association("my-cluster", ROLE_ARN)

        rds.add_role_to_db_cluster.assert_called_once_with(
            DBClusterIdentifier="my-cluster", RoleArn=ROLE_ARN
        )

    @pytest.mark.asyncio
    async def test_duplicate_add(self, client: RdsAssociationClient, state: MockRdsState) -> None:
        state.put_role("my-cluster", ROLE_ARN)

        with pytest.raises(AssociationExistsError):
            await client.add_association("my-cluster", ROLE_ARN)

    @pytest.mark.asyncio
    async def test_add_to_missing_cluster(self, client: RdsAssociationClient) -> None:
        with pytest.raises(ParentNotFoundError):
            await client.add_association("ghost", ROLE_ARN)

    @pytest.mark.asyncio
    async def test_remove_missing_role(self, client: RdsAssociationClient) -> None:
        with pytest.raises(AssociationNotFoundError):
            await client.remove_association("my-cluster", ROLE_ARN)

    @pytest.mark.asyncio
    async def test_describe_builds_records(
        self, client: RdsAssociationClient, state: MockRdsState
    ) -> None:
        state.put_role("my-cluster", ROLE_ARN, feature_name="s3Import")
        state.put_role("my-cluster", "arn:aws:iam::123456789012:role/other", status="INVALID")

        records = await client.describe_associations("my-cluster")

        by_arn = {r.key.member_id: r for r in records}
        assert by_arn[ROLE_ARN].status is AssociationStatus.ACTIVE
        assert by_arn[ROLE_ARN].feature_name == "s3Import"
        assert by_arn[ROLE_ARN].raw_status == STATUS_ACTIVE
        other = by_arn["arn:aws:iam::123456789012:role/other"]
        assert other.status is AssociationStatus.UNKNOWN
        assert other.raw_status == "INVALID"
        assert other.feature_name is None

    @pytest.mark.asyncio
    async def test_describe_missing_cluster(self, client: RdsAssociationClient) -> None:
        with pytest.raises(ParentNotFoundError):
            await client.describe_associations("ghost")

    @pytest.mark.asyncio
    async def test_describe_response_without_cluster(self) -> None:
        rds = mock.MagicMock()
        rds.describe_db_clusters.return_value = {"DBClusters": []}
        client = RdsAssociationClient(rds)

        with pytest.raises(ParentNotFoundError):
            await client.describe_associations("my-cluster")

    @pytest.mark.asyncio
    async def test_describe_matches_identifier_case_insensitively(self) -> None:
        rds = mock.MagicMock()
        rds.describe_db_clusters.return_value = {
            "DBClusters": [
                {
                    "DBClusterIdentifier": "my-cluster",
                    "AssociatedRoles": [{"RoleArn": ROLE_ARN, "Status": "ACTIVE"}],
                }
            ]
        }
        client = RdsAssociationClient(rds)

        records = await client.describe_associations("My-Cluster")

        assert len(records) == 1
        assert records[0].key.parent_id == "My-Cluster"
        assert records[0].status is AssociationStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_throttling_is_transient(
        self, client: RdsAssociationClient, state: MockRdsState
    ) -> None:
        state.throttle(operation="DescribeDBClusters")

        with pytest.raises(TransientAPIError) as exc_info:
            await client.describe_associations("my-cluster")

        assert exc_info.value.code == "Throttling"

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self) -> None:
        rds = mock.MagicMock()

        def fail(**kwargs: Any) -> None:
            raise EndpointConnectionError(endpoint_url="https://rds.eu-west-1.amazonaws.com")

        rds.describe_db_clusters.side_effect = fail
        client = RdsAssociationClient(rds)

        with pytest.raises(TransientAPIError):
            await client.describe_associations("my-cluster")
