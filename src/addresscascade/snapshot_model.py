"""
Snapshot and entry dataclasses for the address cascade.

This module provides the typed data structures shared by the cascade store,
the suggestion coordinator and the validation helpers.

Design Philosophy: Correct by Construction
- Immutable snapshots (frozen dataclass, read-only mappings)
- Explicit per-field entry state instead of side-channel flags
- Direct attribute access (no getattr fallbacks)
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional


@dataclass(frozen=True)
class HierarchyEntry:
    """One result of a hierarchy search.

    The parent chain is singly linked and may be partial: a link without a
    stable_id is not itself constrained, a link without a name ends the cascade
    into ancestor fields.
    """
    name: str
    stable_id: Optional[str] = None
    user_generated_id: Optional[str] = None
    parent: Optional['HierarchyEntry'] = None
    level: Optional[str] = None

    @property
    def display_value(self) -> str:
        """Value written into the address field when this entry is selected."""
        return self.user_generated_id or self.name

    @property
    def label(self) -> str:
        """Dropdown label: the display value followed by the parent's name."""
        if self.parent is not None and self.parent.name:
            return f"{self.display_value}, {self.parent.name}"
        return self.display_value

    def ancestors(self) -> Iterator['HierarchyEntry']:
        """Iterate the parent chain, nearest ancestor first."""
        current = self.parent
        while current is not None:
            yield current
            current = current.parent

    def to_dict(self) -> Dict[str, Any]:
        """Export to the server's JSON shape."""
        return {
            'name': self.name,
            'uuid': self.stable_id,
            'userGeneratedId': self.user_generated_id,
            'level': self.level,
            'parent': self.parent.to_dict() if self.parent is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'HierarchyEntry':
        """Import from the server's JSON shape (empty uuids are treated as missing)."""
        parent_data = data.get('parent')
        return cls(
            name=data.get('name') or '',
            stable_id=data.get('uuid') or None,
            user_generated_id=data.get('userGeneratedId') or None,
            parent=cls.from_dict(parent_data) if parent_data else None,
            level=data.get('level'),
        )


class FieldEntryState(Enum):
    """How a field's current value came to be."""
    IDLE = "idle"
    AUTO_POPULATING = "autoPopulating"
    USER_EDITING = "userEditing"


@dataclass(frozen=True)
class FieldMetadata:
    """Provenance of a single field value.

    stable_id present means the value came from a server-confirmed entry.
    mirrored_value is the value as it was selected; None once the user typed.
    """
    stable_id: Optional[str] = None
    user_generated_id: Optional[str] = None
    mirrored_value: Optional[str] = None
    entry_state: FieldEntryState = FieldEntryState.IDLE

    @classmethod
    def empty(cls) -> 'FieldMetadata':
        return cls()

    @classmethod
    def from_entry(cls, entry: HierarchyEntry, entry_state: FieldEntryState) -> 'FieldMetadata':
        return cls(
            stable_id=entry.stable_id,
            user_generated_id=entry.user_generated_id,
            mirrored_value=entry.display_value,
            entry_state=entry_state,
        )

    @property
    def is_authoritative(self) -> bool:
        return self.stable_id is not None

    @property
    def has_identifier(self) -> bool:
        return self.stable_id is not None or self.user_generated_id is not None

    def with_state(self, entry_state: FieldEntryState) -> 'FieldMetadata':
        return replace(self, entry_state=entry_state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stable_id': self.stable_id,
            'user_generated_id': self.user_generated_id,
            'mirrored_value': self.mirrored_value,
            'entry_state': self.entry_state.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'FieldMetadata':
        return cls(
            stable_id=data.get('stable_id'),
            user_generated_id=data.get('user_generated_id'),
            mirrored_value=data.get('mirrored_value'),
            entry_state=FieldEntryState(data.get('entry_state', FieldEntryState.IDLE.value)),
        )


@dataclass(frozen=True)
class CascadeSnapshot:
    """Immutable snapshot of all address values and their metadata.

    Every store mutation produces a new snapshot with a higher version, so
    subscribers can diff consecutive snapshots without copying.
    """
    values: Mapping[str, Optional[str]] = field(default_factory=lambda: MappingProxyType({}))
    metadata: Mapping[str, FieldMetadata] = field(default_factory=lambda: MappingProxyType({}))
    version: int = 0

    @classmethod
    def create(
        cls,
        values: Dict[str, Optional[str]],
        metadata: Dict[str, FieldMetadata],
        version: int,
    ) -> 'CascadeSnapshot':
        """Create a snapshot, freezing the given dicts behind read-only views."""
        return cls(
            values=MappingProxyType(dict(values)),
            metadata=MappingProxyType(dict(metadata)),
            version=version,
        )

    def changed_fields(self, previous: 'CascadeSnapshot') -> set:
        """Field keys whose value or metadata differs from a previous snapshot."""
        keys = set(self.values) | set(previous.values) | set(self.metadata) | set(previous.metadata)
        return {
            k for k in keys
            if self.values.get(k) != previous.values.get(k)
            or self.metadata.get(k) != previous.metadata.get(k)
        }

    def to_dict(self) -> Dict[str, Any]:
        """Export to JSON-serializable dict."""
        return {
            'version': self.version,
            'values': dict(self.values),
            'metadata': {k: m.to_dict() for k, m in self.metadata.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'CascadeSnapshot':
        """Import from dict (e.g., a previously exported session)."""
        return cls.create(
            values=dict(data.get('values', {})),
            metadata={k: FieldMetadata.from_dict(m) for k, m in data.get('metadata', {}).items()},
            version=data.get('version', 0),
        )
