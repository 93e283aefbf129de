"""
Read-only gating and parent lookups.

Pure functions over a level chain and a snapshot of values/metadata. In
top-down display a strict field stays disabled until its parent holds a
value; bottom-up display never disables anything, since leaves come first
there.
"""

from typing import Dict, List, Mapping, Optional

from addresscascade.levels import HierarchyLevel, LevelChain
from addresscascade.snapshot_model import FieldMetadata


def find_parent_field(chain: LevelChain, field_key: str) -> Optional[str]:
    """Field key of the immediate parent level, None for the root."""
    return chain.parent_of(field_key)


def is_read_only(
    level: HierarchyLevel,
    values: Mapping[str, Optional[str]],
    strictness: Mapping[str, bool],
    top_down: bool,
    chain: LevelChain,
) -> bool:
    """Whether a level must be disabled because its strict parent chain is incomplete."""
    if not top_down:
        return False
    if not strictness.get(level.field_key, False):
        return False

    parent_key = chain.parent_of(level.field_key)
    if parent_key is None:
        return False
    return not values.get(parent_key)


def read_only_map(
    chain: LevelChain,
    values: Mapping[str, Optional[str]],
    strictness: Mapping[str, bool],
    top_down: bool,
) -> Dict[str, bool]:
    """Evaluate is_read_only for every level, in level order."""
    return {
        level.field_key: is_read_only(level, values, strictness, top_down, chain)
        for level in chain
    }


def get_parent_stable_id(
    chain: LevelChain,
    field_key: str,
    metadata: Mapping[str, FieldMetadata],
    top_down: bool,
) -> Optional[str]:
    """
    Stable id of the parent's selected entry, used to narrow a search.

    Only top-down display narrows searches: in bottom-up mode the parent is
    typically filled after the child, so there is nothing to narrow by.
    """
    if not top_down:
        return None
    parent_key = chain.parent_of(field_key)
    if parent_key is None:
        return None
    parent_metadata = metadata.get(parent_key)
    return parent_metadata.stable_id if parent_metadata is not None else None


def display_levels(chain: LevelChain, top_down: bool) -> List[HierarchyLevel]:
    """Levels in display order: root first when top-down, leaf first otherwise."""
    return list(chain) if top_down else list(reversed(chain.levels))
