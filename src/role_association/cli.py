"""Role association CLI (rra).

Drives the reconciler's public operations by hand: the same create / read /
delete / import steps an orchestrator performs, plus manifest apply and
destroy.

Usage:
    rra encode my-cluster arn:aws:iam::123456789012:role/s3-import
    rra create my-cluster arn:aws:iam::123456789012:role/s3-import --feature s3Import
    rra read "my-cluster,arn:aws:iam::123456789012:role/s3-import"
    rra delete "my-cluster,arn:aws:iam::123456789012:role/s3-import"
    rra apply manifests/associations.yaml
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import click

from .client import RdsAssociationClient
from .codec import decode_id, encode_id
from .config import Config, ConfigurationError
from .errors import AssociationError, ConvergenceTimeoutError
from .main import setup_logging
from .manifest import ApplyResult, apply_manifest, destroy_manifest
from .manifest_loader import ManifestLoadError, load_manifest
from .records import AssociationKey, AssociationRecord
from .reconciler import AssociationReconciler
from .session import StaticCredentialsError, get_rds_client

T = TypeVar("T")


def build_reconciler() -> tuple[Config, AssociationReconciler]:
    """Load configuration from the environment and build a reconciler.

    Raises:
        click.ClickException: On configuration or credential errors.
    """
    try:
        config = Config.from_env()
        client = RdsAssociationClient(get_rds_client(config))
    except (ConfigurationError, StaticCredentialsError) as e:
        raise click.ClickException(str(e)) from e
    return config, AssociationReconciler.from_config(config, client)


def run_operation(operation: Coroutine[Any, Any, T]) -> T:
    """Run a reconciler coroutine, mapping its errors onto CLI failures."""
    try:
        return asyncio.run(operation)
    except ConvergenceTimeoutError as e:
        raise click.ClickException(
            f"{e} (the operation is safe to retry; last status: {e.last_status})"
        ) from e
    except AssociationError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}") from e


def record_to_dict(composite_id: str, record: AssociationRecord | None) -> dict[str, Any]:
    return {
        "id": composite_id,
        "present": record is not None,
        "status": record.status.value if record else None,
        "raw_status": record.raw_status if record else None,
        "feature_name": record.feature_name if record else None,
    }


def decode_or_fail(composite_id: str) -> AssociationKey:
    try:
        return decode_id(composite_id)
    except AssociationError as e:
        raise click.BadParameter(str(e), param_hint="COMPOSITE_ID") from e


def echo_apply_result(result: ApplyResult) -> None:
    for entry in result.entries:
        line = f"{entry.action.value:<10} {entry.composite_id}"
        if entry.error is not None:
            line += f"  ({type(entry.error).__name__}: {entry.error})"
        click.echo(line)
    if not result.success:
        raise click.ClickException(f"{len(result.failed)} association(s) failed to converge")


feature_option = click.option(
    "--feature",
    "feature_name",
    default=None,
    help="RDS feature name of the association (e.g. s3Import).",
)


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="rra")
@click.option("-v", "--verbose", is_flag=True, help="Emit INFO logs (JSON, to stderr).")
def cli(verbose: bool) -> None:
    """DB cluster role association CLI (rra).

    \b
    Configuration comes from the environment:
        AWS_REGION, RDS_ENDPOINT_URL, CREATE_TIMEOUT, DELETE_TIMEOUT, POLL_INTERVAL
    """
    setup_logging(logging.INFO if verbose else logging.WARNING, stream=sys.stderr)


@cli.command()
@click.argument("cluster")
@click.argument("role_arn")
def encode(cluster: str, role_arn: str) -> None:
    """Print the composite ID of CLUSTER and ROLE_ARN."""
    try:
        click.echo(encode_id(AssociationKey(parent_id=cluster, member_id=role_arn)))
    except AssociationError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.argument("cluster")
@click.argument("role_arn")
@feature_option
def create(cluster: str, role_arn: str, feature_name: str | None) -> None:
    """Associate ROLE_ARN with CLUSTER and wait until ACTIVE."""
    key = AssociationKey(parent_id=cluster, member_id=role_arn)
    _, reconciler = build_reconciler()
    result = run_operation(reconciler.create(key, feature_name=feature_name))
    click.echo(f"{key.composite_id} ACTIVE after {result.polls} poll(s)")


@cli.command()
@click.argument("composite_id")
@feature_option
def read(composite_id: str, feature_name: str | None) -> None:
    """Show the current state of COMPOSITE_ID."""
    key = decode_or_fail(composite_id)
    _, reconciler = build_reconciler()
    result = run_operation(reconciler.read(key, feature_name=feature_name))
    click.echo(json.dumps(record_to_dict(composite_id, result.record)))


@cli.command()
@click.argument("composite_id")
@feature_option
def delete(composite_id: str, feature_name: str | None) -> None:
    """Remove COMPOSITE_ID and wait until it is gone."""
    key = decode_or_fail(composite_id)
    _, reconciler = build_reconciler()
    result = run_operation(reconciler.delete(key, feature_name=feature_name))
    if result is None:
        click.echo(f"{composite_id} already absent")
    else:
        click.echo(f"{composite_id} removed after {result.polls} poll(s)")


@cli.command("import")
@click.argument("composite_id")
@feature_option
def import_(composite_id: str, feature_name: str | None) -> None:
    """Verify COMPOSITE_ID exists and print its state for adoption."""
    decode_or_fail(composite_id)
    _, reconciler = build_reconciler()
    record = run_operation(reconciler.import_id(composite_id, feature_name=feature_name))
    click.echo(json.dumps(record_to_dict(composite_id, record)))


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def apply(manifest: Path) -> None:
    """Converge every association in MANIFEST to its declared state."""
    try:
        loaded = load_manifest(manifest)
    except ManifestLoadError as e:
        raise click.ClickException(str(e)) from e
    config, reconciler = build_reconciler()
    result = run_operation(
        apply_manifest(reconciler, loaded, max_concurrency=config.max_concurrent_reconciles)
    )
    echo_apply_result(result)


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def destroy(manifest: Path) -> None:
    """Remove every association listed in MANIFEST."""
    try:
        loaded = load_manifest(manifest)
    except ManifestLoadError as e:
        raise click.ClickException(str(e)) from e
    config, reconciler = build_reconciler()
    result = run_operation(
        destroy_manifest(reconciler, loaded, max_concurrency=config.max_concurrent_reconciles)
    )
    echo_apply_result(result)


if __name__ == "__main__":
    cli()
