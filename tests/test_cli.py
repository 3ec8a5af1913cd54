"""Tests for the rra command line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner
from rds_mock import STATUS_ACTIVE, MockRdsContext

from role_association.cli import cli

ROLE_ARN = "arn:aws:iam::123456789012:role/s3-import"
COMPOSITE_ID = f"cluster-A,{ROLE_ARN}"


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch, rds: MockRdsContext) -> MockRdsContext:
    """Region set, no static credentials, mock RDS installed."""
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    for name in ("RDS_ENDPOINT_URL", "POLL_INTERVAL", "CREATE_TIMEOUT", "DELETE_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    return rds


def write_manifest(path: Path, *entries: dict[str, str]) -> Path:
    path.write_text(yaml.safe_dump({"associations": list(entries)}))
    return path


class TestEncode:
    def test_encode(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["encode", "cluster-A", "role-arn-X"])

        assert result.exit_code == 0
        assert result.output.strip() == "cluster-A,role-arn-X"

    def test_encode_rejects_delimiter(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["encode", "cluster,A", "role-arn-X"])

        assert result.exit_code == 1
        assert "reserved delimiter" in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "rra" in result.output


class TestOperations:
    """create / read / delete / import against the mock RDS API."""

    def test_create(self, runner: CliRunner, env: MockRdsContext) -> None:
        result = runner.invoke(cli, ["create", "cluster-A", ROLE_ARN, "--feature", "s3Import"])

        assert result.exit_code == 0, result.output
        assert f"{COMPOSITE_ID} ACTIVE after 1 poll(s)" in result.output
        role = env.state.get_role("cluster-A", ROLE_ARN)
        assert role is not None
        assert role.status == STATUS_ACTIVE
        assert role.feature_name == "s3Import"

    def test_create_missing_cluster(self, runner: CliRunner, env: MockRdsContext) -> None:
        result = runner.invoke(cli, ["create", "ghost", ROLE_ARN])

        assert result.exit_code == 1
        assert "ParentNotFoundError" in result.output

    def test_read_present(self, runner: CliRunner, env: MockRdsContext) -> None:
        env.state.put_role("cluster-A", ROLE_ARN, feature_name="s3Import")

        result = runner.invoke(cli, ["read", COMPOSITE_ID])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output.strip().splitlines()[-1])
        assert payload["present"] is True
        assert payload["status"] == "ACTIVE"
        assert payload["feature_name"] == "s3Import"

    def test_read_absent(self, runner: CliRunner, env: MockRdsContext) -> None:
        result = runner.invoke(cli, ["read", COMPOSITE_ID])

        assert result.exit_code == 0
        assert '"present": false' in result.output

    def test_read_malformed_id(self, runner: CliRunner, env: MockRdsContext) -> None:
        result = runner.invoke(cli, ["read", "cluster-A"])

        assert result.exit_code == 2
        assert "unexpected format of ID" in result.output
        assert env.state.calls == []

    def test_delete_present(self, runner: CliRunner, env: MockRdsContext) -> None:
        env.state.put_role("cluster-A", ROLE_ARN)

        result = runner.invoke(cli, ["delete", COMPOSITE_ID])

        assert result.exit_code == 0, result.output
        assert f"{COMPOSITE_ID} removed after 1 poll(s)" in result.output
        assert env.state.get_role("cluster-A", ROLE_ARN) is None

    def test_delete_absent(self, runner: CliRunner, env: MockRdsContext) -> None:
        result = runner.invoke(cli, ["delete", COMPOSITE_ID])

        assert result.exit_code == 0
        assert "already absent" in result.output

    def test_import_present(self, runner: CliRunner, env: MockRdsContext) -> None:
        env.state.put_role("cluster-A", ROLE_ARN)

        result = runner.invoke(cli, ["import", COMPOSITE_ID])

        assert result.exit_code == 0, result.output
        assert '"present": true' in result.output

    def test_import_absent(self, runner: CliRunner, env: MockRdsContext) -> None:
        result = runner.invoke(cli, ["import", COMPOSITE_ID])

        assert result.exit_code == 1
        assert "AssociationNotFoundError" in result.output


class TestManifestCommands:
    def test_apply(self, runner: CliRunner, env: MockRdsContext, tmp_path: Path) -> None:
        path = write_manifest(
            tmp_path / "associations.yaml",
            {"dbClusterIdentifier": "cluster-A", "roleArn": ROLE_ARN},
        )

        result = runner.invoke(cli, ["apply", str(path)])

        assert result.exit_code == 0, result.output
        assert f"created    {COMPOSITE_ID}" in result.output

    def test_apply_reports_failures(
        self, runner: CliRunner, env: MockRdsContext, tmp_path: Path
    ) -> None:
        path = write_manifest(
            tmp_path / "associations.yaml",
            {"dbClusterIdentifier": "ghost", "roleArn": ROLE_ARN},
        )

        result = runner.invoke(cli, ["apply", str(path)])

        assert result.exit_code == 1
        assert "failed" in result.output
        assert "1 association(s) failed to converge" in result.output

    def test_apply_invalid_manifest(
        self, runner: CliRunner, env: MockRdsContext, tmp_path: Path
    ) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("associations: [unclosed")

        result = runner.invoke(cli, ["apply", str(path)])

        assert result.exit_code == 1
        assert "Invalid YAML" in result.output

    def test_destroy(self, runner: CliRunner, env: MockRdsContext, tmp_path: Path) -> None:
        env.state.put_role("cluster-A", ROLE_ARN)
        path = write_manifest(
            tmp_path / "associations.yaml",
            {"dbClusterIdentifier": "cluster-A", "roleArn": ROLE_ARN},
        )

        result = runner.invoke(cli, ["destroy", str(path)])

        assert result.exit_code == 0, result.output
        assert f"deleted    {COMPOSITE_ID}" in result.output
        assert env.state.list_roles("cluster-A") == []


class TestEnvironmentErrors:
    def test_missing_region(
        self, runner: CliRunner, env: MockRdsContext, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("AWS_REGION")
        monkeypatch.delenv("AWS_DEFAULT_REGION", raising=False)

        result = runner.invoke(cli, ["read", COMPOSITE_ID])

        assert result.exit_code == 1
        assert "AWS_REGION is required" in result.output

    def test_static_credentials_refused(
        self, runner: CliRunner, env: MockRdsContext, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "secret")

        result = runner.invoke(cli, ["read", COMPOSITE_ID])

        assert result.exit_code == 1
        assert "SECURITY VIOLATION" in result.output
        assert env.state.calls == []
