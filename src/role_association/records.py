"""Core value types shared by the reader, poller and reconciler."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Never legal in a DB cluster identifier or an IAM role ARN
ID_DELIMITER = ","


class AssociationStatus(str, Enum):
    """Lifecycle states an association can be observed in."""

    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    DELETING = "DELETING"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_raw(cls, raw: str | None) -> AssociationStatus:
        """Map a raw API status onto a known state, UNKNOWN for anything else."""
        if not raw:
            return cls.UNKNOWN
        try:
            return cls(raw.upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class AssociationKey:
    """Two-part key of an association: parent resource and member entity."""

    parent_id: str
    member_id: str

    @property
    def composite_id(self) -> str:
        """Opaque single-string handle for this key."""
        from .codec import encode_id

        return encode_id(self)

    def __str__(self) -> str:
        return f"{self.parent_id}{ID_DELIMITER}{self.member_id}"


@dataclass(frozen=True)
class AssociationRecord:
    """Snapshot of an association as reported by the remote API.

    Never cached across calls; every lookup produces a fresh record.
    """

    key: AssociationKey
    status: AssociationStatus
    feature_name: str | None = None
    raw_status: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status is AssociationStatus.ACTIVE
