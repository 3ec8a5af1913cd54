"""Pydantic models for association manifests with validation.

These models provide:
1. Type-safe YAML parsing
2. Validation at the boundary (fail fast, fail loudly)
3. Conversion to the reconciler's AssociationKey
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field, StringConstraints, field_validator, model_validator

from .codec import ID_DELIMITER
from .records import AssociationKey

# DB cluster identifiers: letter first, letters/digits/hyphens, max 63
VALID_CLUSTER_IDENTIFIER_PATTERN = r"^[a-zA-Z][a-zA-Z0-9-]*$"
VALID_ROLE_ARN_PATTERN = r"^arn:aws[a-z-]*:iam::\d{12}:role/\S+$"
VALID_FEATURE_NAME_PATTERN = r"^[a-zA-Z][a-zA-Z0-9_]*$"

# Upper bound on manifest entries (prevents runaway fan-out)
MAX_MANIFEST_ENTRIES = 500

# RDS feature names such as s3Import, s3Export, Lambda, SageMaker
FeatureName = Annotated[str, StringConstraints(pattern=VALID_FEATURE_NAME_PATTERN)]


class Ensure(str, Enum):
    """Desired state of an association."""

    PRESENT = "present"
    ABSENT = "absent"


class AssociationSpec(BaseModel):
    """Desired state of one DB cluster role association."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    db_cluster_identifier: str = Field(
        alias="dbClusterIdentifier",
        min_length=1,
        max_length=63,
        pattern=VALID_CLUSTER_IDENTIFIER_PATTERN,
    )
    role_arn: str = Field(alias="roleArn", pattern=VALID_ROLE_ARN_PATTERN)
    feature_name: FeatureName | None = Field(None, alias="featureName")
    ensure: Ensure = Ensure.PRESENT

    @field_validator("role_arn")
    @classmethod
    def validate_role_arn(cls, v: str) -> str:
        if ID_DELIMITER in v:
            raise ValueError(f"roleArn must not contain {ID_DELIMITER!r}")
        return v

    @property
    def key(self) -> AssociationKey:
        return AssociationKey(parent_id=self.db_cluster_identifier, member_id=self.role_arn)


class AssociationManifest(BaseModel):
    """A set of associations owned by one reconciler run."""

    model_config = {"extra": "ignore"}

    associations: list[AssociationSpec] = Field(
        default_factory=list, max_length=MAX_MANIFEST_ENTRIES
    )

    @model_validator(mode="after")
    def reject_duplicate_keys(self) -> AssociationManifest:
        # One owner per key: two entries for the same pair would race each other
        seen: set[AssociationKey] = set()
        duplicates: list[str] = []
        for spec in self.associations:
            if spec.key in seen:
                duplicates.append(spec.key.composite_id)
            seen.add(spec.key)
        if duplicates:
            raise ValueError(f"duplicate associations in manifest: {sorted(set(duplicates))}")
        return self
