"""Association reconciler.

Drives one association through Absent -> Creating -> Active -> Deleting ->
Absent. Each public operation issues its mutating call and then polls until
the remote state is observed to match, so a caller seeing success can rely
on the remote side having converged.

IDEMPOTENCE:
- create on an existing association succeeds (and still waits for ACTIVE)
- delete on a missing association or a missing parent succeeds
Both properties make every operation safe to replay after a timeout.

The reconciler holds no lock. Operations on the same key must be
serialised by the caller; operations on disjoint keys may run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from .client import AssociationClient
from .codec import decode_id, encode_id
from .config import Config
from .errors import (
    AssociationExistsError,
    AssociationNotFoundError,
    ParentNotFoundError,
    UnexpectedStateError,
)
from .poller import (
    ConvergencePoller,
    ParentGonePolicy,
    WaitResult,
    is_associated,
    is_disassociated,
)
from .provenance import Operation, OperationProvenance, ProvenanceLogger
from .reader import RemoteStateReader
from .records import AssociationKey, AssociationRecord, AssociationStatus

logger = logging.getLogger(__name__)


@dataclass
class ReadResult:
    """Result of a drift-detecting read."""

    record: AssociationRecord | None

    @property
    def present(self) -> bool:
        """False signals drift: the association no longer exists remotely."""
        return self.record is not None


class AssociationReconciler:
    """Create, read and delete associations against an eventually consistent API."""

    def __init__(
        self,
        client: AssociationClient,
        *,
        create_timeout: float,
        delete_timeout: float,
        poll_interval: float,
        poll_jitter: float = 0.0,
        provenance_logger: ProvenanceLogger | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            client: Remote association calls.
            create_timeout: Seconds to wait for ACTIVE after an add.
            delete_timeout: Seconds to wait for absence after a remove.
            poll_interval: Seconds between lookups while waiting.
            poll_jitter: Max random seconds added to each poll sleep.
            provenance_logger: Audit logger; a default one is created if omitted.
        """
        self._client = client
        self._reader = RemoteStateReader(client)
        self._poller = ConvergencePoller(
            self._reader, poll_interval=poll_interval, jitter=poll_jitter
        )
        self._create_timeout = create_timeout
        self._delete_timeout = delete_timeout
        self._provenance = provenance_logger or ProvenanceLogger()

    @classmethod
    def from_config(cls, config: Config, client: AssociationClient) -> AssociationReconciler:
        """Build a reconciler with the configured timeouts and poll interval."""
        return cls(
            client,
            create_timeout=config.create_timeout_seconds,
            delete_timeout=config.delete_timeout_seconds,
            poll_interval=config.poll_interval_seconds,
            poll_jitter=config.poll_jitter_seconds,
            provenance_logger=ProvenanceLogger(enabled=config.enable_audit_logging),
        )

    @property
    def reader(self) -> RemoteStateReader:
        return self._reader

    async def create(
        self,
        key: AssociationKey,
        *,
        feature_name: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WaitResult:
        """Associate key.member_id with key.parent_id and wait until ACTIVE.

        Raises:
            InvalidKeyError: If the key cannot be encoded.
            ParentNotFoundError: If the parent resource does not exist.
            ConvergenceTimeoutError: If ACTIVE was not observed in time. The
                association may still be forming; retrying is safe.
            OperationCancelledError: If cancel_event was set.
        """
        composite_id = encode_id(key)
        provenance = self._provenance.create_provenance(
            Operation.CREATE, composite_id, feature_name
        )
        start = time.monotonic()

        try:
            try:
                await self._client.add_association(key.parent_id, key.member_id, feature_name)
            except AssociationExistsError:
                logger.info(
                    "Association already exists",
                    extra={"composite_id": composite_id, "feature_name": feature_name},
                )
                provenance.already_in_target_state = True

            result = await self._poller.wait_for(
                is_associated,
                key,
                timeout=self._create_timeout,
                feature_name=feature_name,
                parent_gone=ParentGonePolicy.FAIL,
                cancel_event=cancel_event,
            )
            provenance.polls = result.polls
            provenance.converged = True

            logger.info(
                "Association active",
                extra={
                    "composite_id": composite_id,
                    "polls": result.polls,
                    "elapsed_seconds": result.elapsed_seconds,
                },
            )
            return result
        except BaseException as e:
            provenance.record_error(e)
            raise
        finally:
            self._finish(provenance, start)

    async def read(
        self,
        key: AssociationKey,
        *,
        feature_name: str | None = None,
    ) -> ReadResult:
        """Read the association once.

        An absent association is a valid outcome (present=False), not an
        error; the caller decides whether to re-create or drop its record.
        """
        encode_id(key)
        record = await self._reader.lookup(key, feature_name=feature_name)

        if record is None:
            logger.warning(
                "Association not found, drift detected",
                extra={"composite_id": str(key), "feature_name": feature_name},
            )
        return ReadResult(record=record)

    async def delete(
        self,
        key: AssociationKey,
        *,
        feature_name: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WaitResult | None:
        """Remove the association and wait until it is absent.

        Returns:
            WaitResult of the convergence wait, or None when the remote side
            already reported the association (or its parent) as gone.

        Raises:
            InvalidKeyError: If the key cannot be encoded.
            ConvergenceTimeoutError: If absence was not observed in time.
            OperationCancelledError: If cancel_event was set.
        """
        composite_id = encode_id(key)
        provenance = self._provenance.create_provenance(
            Operation.DELETE, composite_id, feature_name
        )
        start = time.monotonic()

        try:
            return await self._remove_and_wait(key, feature_name, cancel_event, provenance)
        except BaseException as e:
            provenance.record_error(e)
            raise
        finally:
            self._finish(provenance, start)

    async def ensure_active(
        self,
        key: AssociationKey,
        *,
        feature_name: str | None = None,
    ) -> AssociationRecord:
        """Verify the association exists in ACTIVE state.

        Used before disruptive operations so they never race a transition
        that is still in flight.

        Raises:
            UnexpectedStateError: If the association is absent or not ACTIVE.
        """
        encode_id(key)
        record = await self._reader.lookup(key, feature_name=feature_name)

        if record is None:
            raise UnexpectedStateError(f"Association {key} not found", observed=None)

        if record.status is not AssociationStatus.ACTIVE:
            raise UnexpectedStateError(
                f"Association {key} exists in non-ACTIVE "
                f"({record.raw_status or record.status.value}) state",
                observed=record,
            )
        return record

    async def force_remove(
        self,
        key: AssociationKey,
        *,
        feature_name: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WaitResult | None:
        """Remove an ACTIVE association out-of-band and wait for absence.

        Raises:
            UnexpectedStateError: If the association is not currently ACTIVE.
        """
        composite_id = encode_id(key)
        provenance = self._provenance.create_provenance(
            Operation.FORCE_REMOVE, composite_id, feature_name
        )
        start = time.monotonic()

        try:
            record = await self.ensure_active(key, feature_name=feature_name)
            return await self._remove_and_wait(
                key, feature_name or record.feature_name, cancel_event, provenance
            )
        except BaseException as e:
            provenance.record_error(e)
            raise
        finally:
            self._finish(provenance, start)

    async def import_id(
        self,
        composite_id: str,
        *,
        feature_name: str | None = None,
    ) -> AssociationRecord:
        """Adopt an existing association by its composite ID.

        Raises:
            MalformedIDError: If the ID cannot be decoded.
            AssociationNotFoundError: If nothing exists to import.
        """
        key = decode_id(composite_id)
        result = await self.read(key, feature_name=feature_name)
        if result.record is None:
            raise AssociationNotFoundError(
                f"Cannot import {composite_id}: association does not exist"
            )

        logger.info(
            "Association imported",
            extra={"composite_id": composite_id, "status": result.record.status.value},
        )
        return result.record

    async def _remove_and_wait(
        self,
        key: AssociationKey,
        feature_name: str | None,
        cancel_event: asyncio.Event | None,
        provenance: OperationProvenance,
    ) -> WaitResult | None:
        try:
            await self._client.remove_association(key.parent_id, key.member_id, feature_name)
        except (ParentNotFoundError, AssociationNotFoundError) as e:
            logger.info(
                "Association already absent",
                extra={"composite_id": str(key), "reason": type(e).__name__},
            )
            provenance.already_in_target_state = True
            provenance.converged = True
            return None

        result = await self._poller.wait_for(
            is_disassociated,
            key,
            timeout=self._delete_timeout,
            feature_name=feature_name,
            parent_gone=ParentGonePolicy.CONVERGED,
            cancel_event=cancel_event,
        )
        provenance.polls = result.polls
        provenance.converged = True

        logger.info(
            "Association removed",
            extra={
                "composite_id": str(key),
                "polls": result.polls,
                "elapsed_seconds": result.elapsed_seconds,
            },
        )
        return result

    def _finish(self, provenance: OperationProvenance, start: float) -> None:
        provenance.duration_seconds = time.monotonic() - start
        self._provenance.log_provenance(provenance)
