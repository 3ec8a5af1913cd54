"""Error taxonomy for association reconciliation.

Every error raised by this package derives from AssociationError and carries
a ``retriable`` flag telling the caller whether re-running the whole
operation is safe and may succeed. All mutating calls are idempotent, so a
retriable error never leaves the remote side in a state that a retry cannot
converge from.

"Not found" outcomes are not errors at the public surface: lookup returns
None, duplicate creates and already-gone deletes succeed. The NotFound /
Exists classes below are raised only by the remote client and translated by
the reader and reconciler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .records import AssociationRecord


class AssociationError(Exception):
    """Base class for all association reconciliation errors."""

    retriable: bool = False


class InvalidKeyError(AssociationError, ValueError):
    """Raised when an association key cannot be encoded."""

    pass


class MalformedIDError(AssociationError, ValueError):
    """Raised when a composite ID does not decode into exactly two parts."""

    pass


class RemoteAPIError(AssociationError):
    """Raised when the remote API rejects a call for a non-transient reason."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class TransientAPIError(RemoteAPIError):
    """Raised on throttling or transport failures."""

    retriable = True


class ParentNotFoundError(RemoteAPIError):
    """Raised when the parent resource (DB cluster) does not exist."""

    pass


class AssociationExistsError(RemoteAPIError):
    """Raised when adding an association that is already present."""

    pass


class AssociationNotFoundError(RemoteAPIError):
    """Raised when an association is expected but absent."""

    pass


class ConvergenceTimeoutError(AssociationError):
    """Raised when the target state was not observed before the timeout.

    The mutating call was accepted, so the association may still be
    converging remotely. Re-polling or retrying the operation is safe.
    """

    retriable = True

    def __init__(
        self,
        message: str,
        *,
        last_record: AssociationRecord | None,
        polls: int,
        timeout_seconds: float,
    ) -> None:
        super().__init__(message)
        self.last_record = last_record
        self.polls = polls
        self.timeout_seconds = timeout_seconds

    @property
    def last_status(self) -> str:
        """Last observed status, or "absent" when no record was seen."""
        if self.last_record is None:
            return "absent"
        return self.last_record.status.value


class OperationCancelledError(AssociationError):
    """Raised when the caller aborted a convergence wait."""

    retriable = True


class UnexpectedStateError(AssociationError):
    """Raised when observed state contradicts an operation's precondition.

    Not retried automatically: it may indicate a conflicting concurrent change.
    """

    def __init__(self, message: str, *, observed: Any = None) -> None:
        super().__init__(message)
        self.observed = observed
