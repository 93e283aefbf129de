"""
CascadeStateStore: owner of the address value map and its metadata.

The store holds one immutable CascadeSnapshot. Every operation builds the next
snapshot from the current one (copy-on-write), bumps the version and notifies
subscribers. Operations are synchronous; nothing yields mid-mutation.

Lifecycle: created once per registration session, reset (not replaced)
between patients.
"""
import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from addresscascade.levels import HierarchyLevel, LevelChain
from addresscascade.snapshot_model import CascadeSnapshot, FieldEntryState, FieldMetadata, HierarchyEntry

logger = logging.getLogger(__name__)


class CascadeStateStore:
    """
    Mutable holder of the current address snapshot.

    Core Attributes:
    - _chain: Ordered levels (positional lookups)
    - _snapshot: Current immutable values + metadata

    Invariants:
    - select_hierarchy_entry is the only operation writing more than one field
    - Selection and freehand edits never clear descendants; only
      clear_descendants does
    """

    def __init__(self, levels: Iterable[HierarchyLevel]):
        self._chain = levels if isinstance(levels, LevelChain) else LevelChain(levels)
        self._snapshot = CascadeSnapshot()
        self._on_change_callbacks: List[Callable[[CascadeSnapshot], None]] = []

    # === Change Subscription ===

    def on_change(self, callback: Callable[[CascadeSnapshot], None]) -> None:
        """Subscribe to snapshot changes. Callback receives the new snapshot."""
        if callback not in self._on_change_callbacks:
            self._on_change_callbacks.append(callback)

    def off_change(self, callback: Callable[[CascadeSnapshot], None]) -> None:
        """Unsubscribe from snapshot changes."""
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    def _notify_change(self) -> None:
        """Fire change callbacks (best-effort)."""
        for callback in list(self._on_change_callbacks):
            try:
                callback(self._snapshot)
            except Exception as e:
                logger.warning(f"Error in cascade change callback: {e}")

    def _commit(self, values: Dict[str, Optional[str]], metadata: Dict[str, FieldMetadata], label: str) -> None:
        self._snapshot = CascadeSnapshot.create(values, metadata, self._snapshot.version + 1)
        logger.debug(f"Cascade snapshot v{self._snapshot.version}: {label}")
        self._notify_change()

    def _working_copy(self) -> Tuple[Dict[str, Optional[str]], Dict[str, FieldMetadata]]:
        return dict(self._snapshot.values), dict(self._snapshot.metadata)

    # ==================== READS ====================

    @property
    def levels(self) -> LevelChain:
        return self._chain

    @property
    def snapshot(self) -> CascadeSnapshot:
        return self._snapshot

    @property
    def values(self) -> Dict[str, Optional[str]]:
        return dict(self._snapshot.values)

    @property
    def metadata(self) -> Dict[str, FieldMetadata]:
        return dict(self._snapshot.metadata)

    def get_value(self, field_key: str) -> Optional[str]:
        self._chain.index_of(field_key)
        return self._snapshot.values.get(field_key)

    def get_metadata(self, field_key: str) -> FieldMetadata:
        self._chain.index_of(field_key)
        return self._snapshot.metadata.get(field_key, FieldMetadata.empty())

    def parent_of(self, field_key: str) -> Optional[str]:
        return self._chain.parent_of(field_key)

    def ancestors_of(self, field_key: str) -> List[str]:
        return self._chain.ancestors_of(field_key)

    def descendants_of(self, field_key: str) -> List[str]:
        return self._chain.descendants_of(field_key)

    # ==================== TRANSITIONS ====================

    def select_hierarchy_entry(self, field_key: str, entry: HierarchyEntry) -> Tuple[str, ...]:
        """
        Write a selected entry into its field and cascade it to ancestors.

        The n-th link of the parent chain is written into the n-th ancestor
        level, only while links have a name: the first nameless link ends the
        walk (even if it carries a stable_id), leaving that ancestor and every
        one above it untouched. Descendants are never touched.

        Args:
            field_key: Field the entry was selected for
            entry: The selected search result

        Returns:
            Field keys written, selected field first

        Raises:
            UnknownFieldError: If field_key is not a configured level
        """
        ancestor_keys = self._chain.ancestors_of(field_key)
        values, metadata = self._working_copy()

        values[field_key] = entry.display_value
        metadata[field_key] = FieldMetadata.from_entry(entry, FieldEntryState.IDLE)
        written = [field_key]

        for ancestor_key, link in zip(ancestor_keys, entry.ancestors()):
            if link.name:
                values[ancestor_key] = link.display_value
                metadata[ancestor_key] = FieldMetadata.from_entry(link, FieldEntryState.AUTO_POPULATING)
                written.append(ancestor_key)
            else:
                logger.debug(f"Ancestor chain of {field_key!r} ends before {ancestor_key!r}")
                break

        self._commit(values, metadata, f"select {field_key}={entry.display_value!r} (wrote {written})")
        return tuple(written)

    def edit_freehand(self, field_key: str, text: str) -> None:
        """
        Store typed text in a single field.

        The field stops mirroring its last selection. Identifiers are kept
        only while the text still equals the mirrored selection.
        """
        self._chain.index_of(field_key)
        values, metadata = self._working_copy()
        previous = metadata.get(field_key, FieldMetadata.empty())

        values[field_key] = text
        if previous.mirrored_value is not None and text == previous.mirrored_value:
            stable_id, user_generated_id = previous.stable_id, previous.user_generated_id
        else:
            stable_id, user_generated_id = None, None
        metadata[field_key] = FieldMetadata(
            stable_id=stable_id,
            user_generated_id=user_generated_id,
            mirrored_value=None,
            entry_state=FieldEntryState.USER_EDITING,
        )

        self._commit(values, metadata, f"edit {field_key}={text!r}")

    def clear_field(self, field_key: str) -> None:
        """Clear one field's value and metadata."""
        self._chain.index_of(field_key)
        values, metadata = self._working_copy()
        values[field_key] = None
        metadata[field_key] = FieldMetadata.empty()
        self._commit(values, metadata, f"clear {field_key}")

    def clear_metadata(self, field_key: str) -> None:
        """Drop a field's identifiers while keeping its value."""
        self._chain.index_of(field_key)
        values, metadata = self._working_copy()
        previous = metadata.get(field_key, FieldMetadata.empty())
        metadata[field_key] = FieldMetadata(entry_state=previous.entry_state)
        self._commit(values, metadata, f"clear metadata {field_key}")

    def clear_descendants(self, field_key: str) -> Tuple[str, ...]:
        """
        Clear every level below field_key.

        field_key and its ancestors are left untouched.

        Returns:
            Field keys cleared, nearest first
        """
        descendant_keys = self._chain.descendants_of(field_key)
        if not descendant_keys:
            return ()

        values, metadata = self._working_copy()
        for key in descendant_keys:
            values[key] = None
            metadata[key] = FieldMetadata.empty()

        self._commit(values, metadata, f"clear descendants of {field_key}: {descendant_keys}")
        return tuple(descendant_keys)

    def settle(self, field_key: str) -> bool:
        """
        Acknowledge an auto-populated field.

        Returns:
            True if the field was AUTO_POPULATING (and is now IDLE)
        """
        current = self.get_metadata(field_key)
        if current.entry_state is not FieldEntryState.AUTO_POPULATING:
            return False

        values, metadata = self._working_copy()
        metadata[field_key] = current.with_state(FieldEntryState.IDLE)
        self._commit(values, metadata, f"settle {field_key}")
        return True

    def reset_all(self) -> None:
        """Empty all values and metadata (between patients)."""
        self._commit({}, {}, "reset")

    def bulk_set(self, values: Mapping[str, Optional[str]]) -> None:
        """
        Replace the value map wholesale, e.g. with a saved patient address.

        Each non-empty value is treated as known-good text: its
        user_generated_id and mirrored_value equal the value, with no
        stable_id until the user re-selects it from the live hierarchy.
        """
        new_values = dict(values)
        unknown = [k for k in new_values if k not in self._chain]
        if unknown:
            logger.debug(f"bulk_set keeps fields outside the configured levels: {unknown}")

        metadata = {
            key: FieldMetadata(user_generated_id=value, mirrored_value=value)
            for key, value in new_values.items()
            if value
        }
        self._commit(new_values, metadata, f"bulk set {sorted(new_values)}")

    def restore(self, snapshot: CascadeSnapshot) -> None:
        """Re-install a previously captured snapshot's values and metadata."""
        self._commit(dict(snapshot.values), dict(snapshot.metadata), f"restore v{snapshot.version}")
