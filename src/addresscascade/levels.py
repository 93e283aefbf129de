"""
Hierarchy level configuration.

Levels are ordered root first: the index of a level in the configured list is
its depth in the hierarchy. The list comes from the server; when the fetch
fails or returns nothing, a built-in default set is substituted so the form
never renders empty.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from addresscascade.exceptions import ConfigurationError, UnknownFieldError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HierarchyLevel:
    """One rung of the address ladder."""
    field_key: str
    display_name: str
    required: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'HierarchyLevel':
        """Build from the server's ordered-levels shape ({addressField, name, required})."""
        return cls(
            field_key=data['addressField'],
            display_name=data.get('name') or data['addressField'],
            required=bool(data.get('required', False)),
        )


DEFAULT_HIERARCHY_LEVELS: Tuple[HierarchyLevel, ...] = (
    HierarchyLevel('stateProvince', 'State'),
    HierarchyLevel('countyDistrict', 'District'),
    HierarchyLevel('cityVillage', 'City / Village'),
    HierarchyLevel('address2', 'Locality / Sector'),
    HierarchyLevel('address1', 'House Number / Flat'),
    HierarchyLevel('postalCode', 'Postal Code'),
)


LevelLike = Union[HierarchyLevel, Mapping[str, Any]]


class LevelChain:
    """Ordered, index-addressable view over a validated level list.

    Answers the positional questions every component asks: who is the parent
    of a field, which fields are its ancestors or descendants.
    """

    def __init__(self, levels: Iterable[LevelLike]):
        self._levels: Tuple[HierarchyLevel, ...] = tuple(
            level if isinstance(level, HierarchyLevel) else HierarchyLevel.from_dict(level)
            for level in levels
        )
        self._index: Dict[str, int] = {}
        for i, level in enumerate(self._levels):
            if not level.field_key:
                raise ConfigurationError(f"Hierarchy level at position {i} has an empty field key")
            if level.field_key in self._index:
                raise ConfigurationError(f"Duplicate hierarchy level: {level.field_key!r}")
            self._index[level.field_key] = i

    def __iter__(self) -> Iterator[HierarchyLevel]:
        return iter(self._levels)

    def __len__(self) -> int:
        return len(self._levels)

    def __contains__(self, field_key: object) -> bool:
        return field_key in self._index

    def __getitem__(self, index: int) -> HierarchyLevel:
        return self._levels[index]

    @property
    def levels(self) -> Tuple[HierarchyLevel, ...]:
        return self._levels

    @property
    def field_keys(self) -> List[str]:
        return [level.field_key for level in self._levels]

    def index_of(self, field_key: str) -> int:
        """Depth of a field (0 = root).

        Raises:
            UnknownFieldError: If field_key is not a configured level
        """
        try:
            return self._index[field_key]
        except KeyError:
            raise UnknownFieldError(field_key) from None

    def get(self, field_key: str) -> HierarchyLevel:
        return self._levels[self.index_of(field_key)]

    def parent_of(self, field_key: str) -> Optional[str]:
        index = self.index_of(field_key)
        return self._levels[index - 1].field_key if index > 0 else None

    def ancestors_of(self, field_key: str) -> List[str]:
        """Ancestor keys, nearest first."""
        index = self.index_of(field_key)
        return [level.field_key for level in reversed(self._levels[:index])]

    def descendants_of(self, field_key: str) -> List[str]:
        """Descendant keys, nearest first."""
        index = self.index_of(field_key)
        return [level.field_key for level in self._levels[index + 1:]]


async def load_hierarchy_levels(
    fetch_levels: Callable[[], Awaitable[Sequence[LevelLike]]],
    default_levels: Optional[Sequence[LevelLike]] = None,
) -> LevelChain:
    """Fetch the ordered levels, substituting defaults on failure.

    A failed or empty fetch is not an error for the caller: the defaults are
    used and the failure is logged.

    Args:
        fetch_levels: Async callable returning levels (HierarchyLevel or server dicts)
        default_levels: Levels to use when the fetch fails; DEFAULT_HIERARCHY_LEVELS if None

    Returns:
        LevelChain over the fetched or default levels
    """
    fallback = default_levels if default_levels is not None else DEFAULT_HIERARCHY_LEVELS
    try:
        fetched = await fetch_levels()
    except Exception as e:
        logger.warning(f"Failed to fetch address hierarchy levels, using defaults: {e}")
        return LevelChain(fallback)

    if not fetched:
        logger.warning("Address hierarchy levels response was empty, using defaults")
        return LevelChain(fallback)

    try:
        chain = LevelChain(fetched)
    except (ConfigurationError, KeyError, TypeError) as e:
        logger.warning(f"Address hierarchy levels response was malformed, using defaults: {e}")
        return LevelChain(fallback)

    logger.info(f"Loaded {len(chain)} address hierarchy levels: {chain.field_keys}")
    return chain
