"""
AddressHierarchyEngine: the surface the form layer talks to.

Wires configuration, strictness, the cascade store, read-only gating and the
suggestion coordinator. The engine owns no rendering: it exposes current
values, suggestion lists and read-only flags, and accepts the user actions
(select, type, clear) that a form would forward to it.
"""
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from addresscascade.cascade_state import CascadeStateStore
from addresscascade.config import CascadeConfig
from addresscascade.levels import HierarchyLevel, LevelChain, LevelLike, load_hierarchy_levels
from addresscascade.read_only import display_levels, get_parent_stable_id, is_read_only, read_only_map
from addresscascade.snapshot_model import CascadeSnapshot, FieldEntryState, FieldMetadata, HierarchyEntry
from addresscascade.strictness import resolve_strictness, strict_field_keys
from addresscascade.suggestions import SearchEntries, SuggestionCoordinator, is_blank_query
from addresscascade.validation import FieldError, has_identifier, validate_strict_fields

logger = logging.getLogger(__name__)


class AddressHierarchyEngine:
    """
    One registration session's address cascade.

    Lifecycle:
    - Created once the level list and configuration are known
    - reset_all() between patients
    - aclose() when the form goes away

    Everything the form reads is derived from the store's current snapshot;
    the strictness map is fixed for the engine's lifetime.
    """

    def __init__(
        self,
        levels: Iterable[LevelLike],
        config: CascadeConfig,
        search_entries: SearchEntries,
    ):
        self._chain = levels if isinstance(levels, LevelChain) else LevelChain(levels)
        self.config = config
        self._strictness: Dict[str, bool] = resolve_strictness(self._chain, config.strict_from_level)
        self._field_errors: Dict[str, FieldError] = {}

        self.store = CascadeStateStore(self._chain)
        self.coordinator = SuggestionCoordinator(
            self._chain,
            self._strictness,
            search_entries,
            debounce_seconds=config.debounce_seconds,
            limit=config.search_limit,
            parent_id_provider=self.get_parent_stable_id,
            on_query_cleared=self.store.clear_field,
        )

        logger.info(
            f"Address engine ready: levels={self._chain.field_keys} "
            f"strict={self.strict_fields} top_down={config.display_top_down}"
        )

    @classmethod
    async def create(
        cls,
        fetch_levels: Callable[[], Awaitable[Sequence[LevelLike]]],
        config: CascadeConfig,
        search_entries: SearchEntries,
        default_levels: Optional[Sequence[LevelLike]] = None,
    ) -> 'AddressHierarchyEngine':
        """Fetch the level list (falling back to defaults) and build an engine."""
        chain = await load_hierarchy_levels(fetch_levels, default_levels)
        return cls(chain, config, search_entries)

    # ==================== DERIVED READS ====================

    @property
    def levels(self) -> LevelChain:
        return self._chain

    @property
    def strictness(self) -> Dict[str, bool]:
        return dict(self._strictness)

    @property
    def strict_fields(self) -> List[str]:
        return strict_field_keys(self._chain, self._strictness)

    @property
    def display_levels(self) -> List[HierarchyLevel]:
        return display_levels(self._chain, self.config.display_top_down)

    @property
    def snapshot(self) -> CascadeSnapshot:
        return self.store.snapshot

    @property
    def values(self) -> Dict[str, Optional[str]]:
        return self.store.values

    @property
    def metadata(self) -> Dict[str, FieldMetadata]:
        return self.store.metadata

    @property
    def suggestions(self) -> Mapping[str, Tuple[HierarchyEntry, ...]]:
        return self.coordinator.suggestions

    @property
    def read_only(self) -> Dict[str, bool]:
        return read_only_map(self._chain, self.store.snapshot.values, self._strictness, self.config.display_top_down)

    @property
    def field_errors(self) -> Dict[str, FieldError]:
        return dict(self._field_errors)

    def is_strict(self, field_key: str) -> bool:
        self._chain.index_of(field_key)
        return self._strictness[field_key]

    def is_read_only(self, field_key: str) -> bool:
        return is_read_only(
            self._chain.get(field_key),
            self.store.snapshot.values,
            self._strictness,
            self.config.display_top_down,
            self._chain,
        )

    def get_parent_stable_id(self, field_key: str) -> Optional[str]:
        return get_parent_stable_id(self._chain, field_key, self.store.snapshot.metadata, self.config.display_top_down)

    def get_suggestions(self, field_key: str) -> Tuple[HierarchyEntry, ...]:
        return self.coordinator.get_suggestions(field_key)

    # ==================== MUTATORS ====================

    def select(self, field_key: str, entry: HierarchyEntry) -> Tuple[str, ...]:
        return self.store.select_hierarchy_entry(field_key, entry)

    def edit_freehand(self, field_key: str, text: str) -> None:
        self.store.edit_freehand(field_key, text)

    def search(self, field_key: str, query: str) -> None:
        """Debounced lookup for strict fields; a blank query clears any field."""
        self.coordinator.search(field_key, query)

    def clear_descendants(self, field_key: str) -> Tuple[str, ...]:
        return self.store.clear_descendants(field_key)

    def clear_descendant_suggestions(self, field_key: str) -> None:
        self.coordinator.clear_descendant_suggestions(field_key)

    def reset_all(self) -> None:
        """Start over for a new patient: values, metadata, sessions and errors."""
        self.coordinator.reset()
        self.store.reset_all()
        self._field_errors.clear()

    def bulk_set(self, values: Mapping[str, Optional[str]]) -> None:
        self.store.bulk_set(values)

    # ==================== FORM EVENTS ====================

    def handle_input_change(self, field_key: str, text: str) -> None:
        """
        React to typing in a field.

        Strict fields only search: their value changes on selection.
        Free-text fields store the text directly. Emptying any field (blank
        text counts as empty) clears it at once, together with its
        descendants' values and suggestions.
        """
        self._field_errors.pop(field_key, None)
        cleared = is_blank_query(text)

        if self.is_strict(field_key):
            self.coordinator.search(field_key, text)
            self.coordinator.unmark_cleared(field_key)
        elif not cleared:
            self.store.edit_freehand(field_key, text)
        else:
            self.coordinator.search(field_key, text)

        if cleared:
            self.coordinator.clear_descendant_suggestions(field_key)
            self.store.clear_descendants(field_key)

    def handle_selection_change(self, field_key: str, entry: Optional[HierarchyEntry]) -> None:
        """
        React to a dropdown selection (or its removal).

        The dropdowns of ancestors written by a cascade report the written
        entry back as a selection; that echo settles the field and is
        otherwise ignored. An entry with the same name but different
        identifiers is a real pick.
        """
        metadata = self.store.get_metadata(field_key)
        if (
            entry is not None
            and metadata.entry_state is FieldEntryState.AUTO_POPULATING
            and entry.display_value == self.store.get_value(field_key)
            and entry.stable_id == metadata.stable_id
            and entry.user_generated_id == metadata.user_generated_id
        ):
            self.store.settle(field_key)
            return

        self._field_errors.pop(field_key, None)
        if entry is None:
            self.coordinator.invalidate(field_key)
            self.store.clear_field(field_key)
            self.coordinator.clear_descendant_suggestions(field_key)
            return

        self.store.select_hierarchy_entry(field_key, entry)
        self.coordinator.clear_descendant_suggestions(field_key)

    # ==================== VALIDATION ====================

    def has_identifier(self, field_key: str) -> bool:
        """Whether a strict, non-empty field is backed by a stable or user-generated id."""
        self._chain.index_of(field_key)
        snapshot = self.store.snapshot
        return has_identifier(field_key, snapshot.values, snapshot.metadata, self._strictness)

    def validate(self) -> bool:
        """Check strict fields before submission; failures become field_errors."""
        snapshot = self.store.snapshot
        self._field_errors = validate_strict_fields(self._chain, snapshot.values, snapshot.metadata, self._strictness)
        return not self._field_errors

    async def aclose(self) -> None:
        await self.coordinator.aclose()
