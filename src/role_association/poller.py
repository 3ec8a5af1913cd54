"""Convergence polling over an eventually consistent API.

Mutating calls return before the remote state settles. The poller re-reads
the association until a predicate holds, the timeout elapses, or the
caller cancels the wait.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .errors import (
    ConvergenceTimeoutError,
    OperationCancelledError,
    ParentNotFoundError,
    TransientAPIError,
)
from .reader import RemoteStateReader
from .records import AssociationKey, AssociationRecord, AssociationStatus

logger = logging.getLogger(__name__)

Predicate = Callable[[AssociationRecord | None], bool]


class ParentGonePolicy(str, Enum):
    """How a missing parent resource is treated while waiting."""

    # Delete path: nothing left to disassociate from
    CONVERGED = "converged"
    # Create path: the association can never become active
    FAIL = "fail"


def is_associated(record: AssociationRecord | None) -> bool:
    """Target of the create path: present and ACTIVE."""
    return record is not None and record.status is AssociationStatus.ACTIVE


def is_disassociated(record: AssociationRecord | None) -> bool:
    """Target of the delete path: absent."""
    return record is None


@dataclass
class WaitResult:
    """Outcome of a successful wait."""

    record: AssociationRecord | None
    polls: int
    elapsed_seconds: float


class ConvergencePoller:
    """Polls a RemoteStateReader until a target condition holds.

    Sleeps between polls wait on the cancel event when one is given, so a
    cancellation interrupts the wait immediately instead of after the
    current interval.
    """

    def __init__(
        self,
        reader: RemoteStateReader,
        *,
        poll_interval: float,
        jitter: float = 0.0,
    ) -> None:
        """Initialize the poller.

        Args:
            reader: Reader used for every poll.
            poll_interval: Seconds between polls.
            jitter: Max random seconds added to each sleep.
        """
        if poll_interval < 0:
            raise ValueError(f"poll_interval must not be negative: {poll_interval}")
        if jitter < 0:
            raise ValueError(f"jitter must not be negative: {jitter}")
        self._reader = reader
        self._poll_interval = poll_interval
        self._jitter = jitter

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    async def wait_for(
        self,
        predicate: Predicate,
        key: AssociationKey,
        *,
        timeout: float,
        feature_name: str | None = None,
        parent_gone: ParentGonePolicy = ParentGonePolicy.FAIL,
        cancel_event: asyncio.Event | None = None,
    ) -> WaitResult:
        """Wait until predicate(lookup(key)) holds.

        Returns as soon as the predicate is satisfied, without a further sleep.

        Args:
            predicate: Condition on the observed record (None when absent).
            key: Association to observe.
            timeout: Overall wait in seconds.
            feature_name: Feature discriminator passed to the reader.
            parent_gone: Treatment of a missing parent resource.
            cancel_event: Setting this event aborts the wait.

        Returns:
            WaitResult with the satisfying record and poll count.

        Raises:
            ConvergenceTimeoutError: Timeout elapsed; carries the last record.
            OperationCancelledError: cancel_event was set.
            ParentNotFoundError: Parent gone under ParentGonePolicy.FAIL.
            RemoteAPIError: Non-transient API failure.
        """
        start = time.monotonic()
        deadline = start + timeout
        polls = 0
        last_record: AssociationRecord | None = None
        last_error: TransientAPIError | None = None

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError(f"Wait for {key} cancelled after {polls} polls")

            polls += 1
            try:
                record = await self._reader.lookup(
                    key, feature_name=feature_name, tolerate_missing_parent=False
                )
            except ParentNotFoundError:
                if parent_gone is ParentGonePolicy.CONVERGED:
                    logger.info(
                        "Parent resource gone, treating as converged",
                        extra={"composite_id": str(key), "polls": polls},
                    )
                    return WaitResult(
                        record=None, polls=polls, elapsed_seconds=time.monotonic() - start
                    )
                raise
            except TransientAPIError as e:
                # Throttling while converging is expected; keep polling until the deadline
                logger.warning(
                    "Transient error during convergence poll",
                    extra={"composite_id": str(key), "polls": polls, "error": str(e)},
                )
                last_error = e
            else:
                last_record = record
                last_error = None
                if predicate(record):
                    elapsed = time.monotonic() - start
                    logger.debug(
                        "Converged",
                        extra={"composite_id": str(key), "polls": polls, "elapsed": elapsed},
                    )
                    return WaitResult(record=record, polls=polls, elapsed_seconds=elapsed)

                logger.debug(
                    "Not yet converged",
                    extra={
                        "composite_id": str(key),
                        "polls": polls,
                        "status": record.status.value if record else "absent",
                    },
                )

            delay = self._poll_interval
            if self._jitter:
                delay += random.uniform(0, self._jitter)

            # A poll that would land past the deadline is never issued
            remaining = deadline - time.monotonic()
            if remaining <= 0 or delay > remaining:
                status = last_record.status.value if last_record else "absent"
                message = (
                    f"Timeout after {timeout}s waiting for {key} "
                    f"({polls} polls, last state: {status})"
                )
                if last_error is not None:
                    message += f", last error: {last_error}"
                raise ConvergenceTimeoutError(
                    message, last_record=last_record, polls=polls, timeout_seconds=timeout
                )

            await self._sleep(delay, key, polls, cancel_event)

    async def _sleep(
        self,
        delay: float,
        key: AssociationKey,
        polls: int,
        cancel_event: asyncio.Event | None,
    ) -> None:
        if cancel_event is None:
            await asyncio.sleep(delay)
            return

        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except TimeoutError:
            return
        raise OperationCancelledError(f"Wait for {key} cancelled after {polls} polls")
