"""Operation provenance for audit.

Every mutating operation (create, delete, force-remove) is stamped with one
structured record answering "what was changed, by which build, and how did
it end?". Records go to the standard logger as JSON via the formatter
installed in main.setup_logging().
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .errors import ConvergenceTimeoutError, OperationCancelledError

logger = logging.getLogger(__name__)

# Version is set at build time or falls back to dev
RECONCILER_VERSION = os.environ.get("RECONCILER_VERSION", "dev")


class Operation(str, Enum):
    """Audited operations."""

    CREATE = "create"
    DELETE = "delete"
    FORCE_REMOVE = "force_remove"


@dataclass
class OperationProvenance:
    """Provenance record of one mutating operation."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    operation: Operation = Operation.CREATE
    composite_id: str = ""
    feature_name: str | None = None

    reconciler_version: str = RECONCILER_VERSION
    git_commit_sha: str = ""

    # Outcome
    polls: int = 0
    converged: bool = False
    already_in_target_state: bool = False
    duration_seconds: float = 0.0
    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        result["operation"] = self.operation.value
        return result

    def record_error(self, error: BaseException) -> None:
        # Task cancellation carries no message
        self.error = str(error) or type(error).__name__
        self.error_type = type(error).__name__
        if isinstance(error, ConvergenceTimeoutError):
            self.polls = error.polls


class ProvenanceLogger:
    """Logs provenance records for audit."""

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled
        self._git_commit_sha = os.environ.get("GIT_COMMIT_SHA", "")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def create_provenance(
        self,
        operation: Operation,
        composite_id: str,
        feature_name: str | None = None,
    ) -> OperationProvenance:
        return OperationProvenance(
            operation=operation,
            composite_id=composite_id,
            feature_name=feature_name,
            reconciler_version=RECONCILER_VERSION,
            git_commit_sha=self._git_commit_sha,
        )

    def log_provenance(self, provenance: OperationProvenance) -> None:
        """Log a completed provenance record.

        Timeouts and cancellations (of the wait or of the task) are logged as
        warnings: the operation is safe to retry and the remote side may
        still converge.
        """
        if not self._enabled:
            return

        log_level = logging.INFO
        if provenance.error_type in (
            ConvergenceTimeoutError.__name__,
            OperationCancelledError.__name__,
            asyncio.CancelledError.__name__,
        ):
            log_level = logging.WARNING
        elif provenance.error_type:
            log_level = logging.ERROR

        logger.log(
            log_level,
            "Association operation provenance",
            extra={
                "provenance": provenance.to_dict(),
                # Flatten key fields for easier querying
                "operation": provenance.operation.value,
                "composite_id": provenance.composite_id,
                "converged": provenance.converged,
                "polls": provenance.polls,
                "duration_seconds": provenance.duration_seconds,
            },
        )
