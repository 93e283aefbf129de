"""Submission checks for strict address fields."""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

from addresscascade.levels import HierarchyLevel
from addresscascade.snapshot_model import FieldMetadata

logger = logging.getLogger(__name__)

SELECT_FROM_DROPDOWN = "SELECT_FROM_DROPDOWN"


@dataclass(frozen=True)
class FieldError:
    """A field-level validation failure surfaced to the form."""
    field_key: str
    code: str = SELECT_FROM_DROPDOWN
    message: str = "Select input from dropdown"


def has_identifier(
    field_key: str,
    values: Mapping[str, Optional[str]],
    metadata: Mapping[str, FieldMetadata],
    strictness: Mapping[str, bool],
) -> bool:
    """Whether a field passes: non-strict, empty, or backed by a stable or user-generated id."""
    if not strictness.get(field_key, False):
        return True
    if not values.get(field_key):
        return True
    field_metadata = metadata.get(field_key)
    return field_metadata is not None and field_metadata.has_identifier


def validate_strict_fields(
    levels: Iterable[HierarchyLevel],
    values: Mapping[str, Optional[str]],
    metadata: Mapping[str, FieldMetadata],
    strictness: Mapping[str, bool],
) -> Dict[str, FieldError]:
    """
    Check every strict, non-empty field for an identifier.

    Returns:
        Errors keyed by field, empty when the address can be submitted
    """
    errors: Dict[str, FieldError] = {}
    for level in levels:
        if not has_identifier(level.field_key, values, metadata, strictness):
            errors[level.field_key] = FieldError(field_key=level.field_key)

    if errors:
        logger.info(f"Address validation failed for fields: {sorted(errors)}")
    return errors
