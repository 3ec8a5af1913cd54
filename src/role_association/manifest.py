"""Converging a manifest of associations.

This is the caller side of the reconciler: it decides per entry whether to
create, delete or leave the association alone, and runs the entries
concurrently. Keys in a manifest are unique (enforced by the model), so no
two tasks ever touch the same association.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from .errors import AssociationError
from .models import AssociationManifest, AssociationSpec, Ensure
from .reconciler import AssociationReconciler

logger = logging.getLogger(__name__)


class EntryAction(str, Enum):
    """What was done for one manifest entry."""

    UNCHANGED = "unchanged"
    CREATED = "created"
    DELETED = "deleted"
    FAILED = "failed"


@dataclass
class EntryResult:
    """Result of converging one manifest entry."""

    composite_id: str
    ensure: Ensure
    action: EntryAction
    error: AssociationError | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class ApplyResult:
    """Result of converging a whole manifest."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    entries: list[EntryResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(e.success for e in self.entries)

    @property
    def failed(self) -> list[EntryResult]:
        return [e for e in self.entries if not e.success]

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    def count(self, action: EntryAction) -> int:
        return sum(1 for e in self.entries if e.action is action)


async def converge_entry(
    reconciler: AssociationReconciler,
    spec: AssociationSpec,
    ensure: Ensure,
    cancel_event: asyncio.Event | None = None,
) -> EntryResult:
    """Bring one association to the desired state.

    Errors from the reconciler are captured in the result so one failing
    entry never stops the others.
    """
    key = spec.key
    composite_id = key.composite_id
    feature_name = spec.feature_name

    try:
        current = await reconciler.read(key, feature_name=feature_name)

        if ensure is Ensure.PRESENT:
            if current.record is not None and current.record.is_active:
                return EntryResult(composite_id, ensure, EntryAction.UNCHANGED)
            # Absent or still converging; create is idempotent and waits for ACTIVE
            await reconciler.create(key, feature_name=feature_name, cancel_event=cancel_event)
            return EntryResult(composite_id, ensure, EntryAction.CREATED)

        if not current.present:
            return EntryResult(composite_id, ensure, EntryAction.UNCHANGED)
        await reconciler.delete(key, feature_name=feature_name, cancel_event=cancel_event)
        return EntryResult(composite_id, ensure, EntryAction.DELETED)

    except AssociationError as e:
        logger.error(
            "Failed to converge association",
            extra={
                "composite_id": composite_id,
                "ensure": ensure.value,
                "error": str(e),
                "error_type": type(e).__name__,
                "retriable": e.retriable,
            },
        )
        return EntryResult(composite_id, ensure, EntryAction.FAILED, error=e)


async def _run_all(
    reconciler: AssociationReconciler,
    targets: list[tuple[AssociationSpec, Ensure]],
    max_concurrency: int,
    cancel_event: asyncio.Event | None,
) -> ApplyResult:
    result = ApplyResult()
    semaphore = asyncio.Semaphore(max_concurrency)

    async def bounded(spec: AssociationSpec, ensure: Ensure) -> EntryResult:
        async with semaphore:
            return await converge_entry(reconciler, spec, ensure, cancel_event)

    result.entries = list(
        await asyncio.gather(*(bounded(spec, ensure) for spec, ensure in targets))
    )
    result.end_time = datetime.now(UTC)

    logger.info(
        "Manifest converged" if result.success else "Manifest partially converged",
        extra={
            "entry_count": len(result.entries),
            "created_count": result.count(EntryAction.CREATED),
            "deleted_count": result.count(EntryAction.DELETED),
            "unchanged_count": result.count(EntryAction.UNCHANGED),
            "failed_count": result.count(EntryAction.FAILED),
            "duration_seconds": result.duration_seconds,
        },
    )
    return result


async def apply_manifest(
    reconciler: AssociationReconciler,
    manifest: AssociationManifest,
    *,
    max_concurrency: int = 1,
    cancel_event: asyncio.Event | None = None,
) -> ApplyResult:
    """Converge every entry to its declared ``ensure`` state."""
    targets = [(spec, spec.ensure) for spec in manifest.associations]
    return await _run_all(reconciler, targets, max_concurrency, cancel_event)


async def destroy_manifest(
    reconciler: AssociationReconciler,
    manifest: AssociationManifest,
    *,
    max_concurrency: int = 1,
    cancel_event: asyncio.Event | None = None,
) -> ApplyResult:
    """Remove every association listed in the manifest."""
    targets = [(spec, Ensure.ABSENT) for spec in manifest.associations]
    return await _run_all(reconciler, targets, max_concurrency, cancel_event)
