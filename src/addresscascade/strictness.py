"""
Strictness resolution for hierarchy levels.

A pure function of the level list and the configured boundary: the boundary
and every level above it (toward the root) are strict, everything below stays
free text. Coarse divisions are checked against the hierarchy, fine-grained
ones (street, postal code) are not.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from addresscascade.levels import HierarchyLevel

logger = logging.getLogger(__name__)


def resolve_strictness(
    levels: Iterable[HierarchyLevel],
    strict_from_level: Optional[str],
) -> Dict[str, bool]:
    """
    Derive the strictness map for an ordered level list.

    ALGORITHM:
    Walk the levels leaf first. Once the boundary is seen, it and every level
    after it in the walk (its ancestors) are strict.

    An unknown boundary fails open: all levels non-strict.

    Args:
        levels: Levels ordered root first
        strict_from_level: Field key of the boundary level, or None

    Returns:
        Dict mapping field_key to strictness, in level order
    """
    ordered = list(levels)
    if not strict_from_level:
        return {level.field_key: False for level in ordered}

    if not any(level.field_key == strict_from_level for level in ordered):
        logger.warning(
            f"Strict boundary level {strict_from_level!r} is not a configured level; "
            f"treating all levels as free text"
        )
        return {level.field_key: False for level in ordered}

    flags: Dict[str, bool] = {}
    boundary_seen = False
    for level in reversed(ordered):
        if level.field_key == strict_from_level:
            boundary_seen = True
        flags[level.field_key] = boundary_seen

    # Restore root-first order
    return {level.field_key: flags[level.field_key] for level in ordered}


def strict_field_keys(levels: Iterable[HierarchyLevel], strictness: Mapping[str, bool]) -> List[str]:
    """Strict field keys in level order (the fields that search at all)."""
    return [level.field_key for level in levels if strictness.get(level.field_key, False)]
