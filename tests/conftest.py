"""Pytest configuration and fixtures."""

import logging
import sys
from collections.abc import Generator
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for rds_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from rds_mock import MockRdsContext  # noqa: E402

from role_association.client import RdsAssociationClient  # noqa: E402
from role_association.config import Config  # noqa: E402
from role_association.reconciler import AssociationReconciler  # noqa: E402
from role_association.session import FORBIDDEN_CREDENTIAL_ENV_VARS, get_rds_client  # noqa: E402


@pytest.fixture
def role_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Environment with no static AWS credentials."""
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def config() -> Config:
    return Config(region="eu-west-1")


@pytest.fixture
def rds(role_credentials: None) -> Generator[MockRdsContext, None, None]:
    """Mock RDS API with one existing cluster, ``cluster-A``."""
    with MockRdsContext(clusters=["cluster-A"]) as ctx:
        yield ctx


@pytest.fixture
def association_client(rds: MockRdsContext, config: Config) -> RdsAssociationClient:
    return RdsAssociationClient(get_rds_client(config))


@pytest.fixture
def reconciler(association_client: RdsAssociationClient) -> AssociationReconciler:
    """Reconciler with a zero poll interval and short timeouts."""
    return AssociationReconciler(
        association_client,
        create_timeout=5,
        delete_timeout=5,
        poll_interval=0,
    )


@pytest.fixture(autouse=True)
def restore_root_logger() -> Generator[None, None, None]:
    """Undo handlers and levels installed by setup_logging() during a test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
