"""Composite identifier encoding.

The composite ID is the only artifact persisted by callers:
``<parent_id>,<member_id>``. A comma never appears in a DB cluster
identifier or an IAM role ARN, so it is reserved as the delimiter and
rejected inside either part.
"""

from __future__ import annotations

from .errors import InvalidKeyError, MalformedIDError
from .records import ID_DELIMITER, AssociationKey


def encode_id(key: AssociationKey) -> str:
    """Encode an association key into its composite ID.

    Raises:
        InvalidKeyError: If a part is empty or contains the delimiter.
    """
    for name, value in (("parent_id", key.parent_id), ("member_id", key.member_id)):
        if not value:
            raise InvalidKeyError(f"{name} must not be empty")
        if ID_DELIMITER in value:
            raise InvalidKeyError(
                f"{name} must not contain the reserved delimiter {ID_DELIMITER!r}: {value}"
            )
    return f"{key.parent_id}{ID_DELIMITER}{key.member_id}"


def decode_id(composite_id: str) -> AssociationKey:
    """Decode a composite ID back into its association key.

    Raises:
        MalformedIDError: If the ID does not split into exactly two
            non-empty segments.
    """
    parts = composite_id.split(ID_DELIMITER)
    if len(parts) != 2 or not all(parts):
        raise MalformedIDError(
            f"unexpected format of ID ({composite_id!r}), "
            f"expected <cluster-identifier>{ID_DELIMITER}<role-arn>"
        )
    return AssociationKey(parent_id=parts[0], member_id=parts[1])
