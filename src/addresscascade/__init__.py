"""
Address-hierarchy cascade engine for patient registration forms.

Manages an ordered chain of administrative-division fields (country, state,
district, city, postal code, ...) where coarse levels must be picked from a
server-side hierarchy and fine levels stay free text.

Key Features:
- Strictness derived from a configured boundary level
- Selecting an entry populates its ancestors, never its descendants
- Debounced per-field search with last-issued-wins staleness protection
- Immutable snapshots of values and per-field metadata
- Validation of strict fields against stable identifiers

Quick Start:
    >>> from addresscascade import AddressHierarchyEngine, CascadeConfig
    >>>
    >>> config = CascadeConfig(display_top_down=True, strict_from_level="countyDistrict")
    >>> engine = await AddressHierarchyEngine.create(fetch_levels, config, search_entries)
    >>>
    >>> engine.handle_input_change("countyDistrict", "Pu")   # debounced search
    >>> engine.handle_selection_change("countyDistrict", engine.get_suggestions("countyDistrict")[0])
    >>> engine.values
    {'countyDistrict': 'Pune', 'stateProvince': 'Maharashtra', 'country': 'India'}

Architecture:
    configuration -> strictness -> read-only gating / searchable fields
    user actions  -> CascadeStateStore (values + metadata snapshots)
                  -> SuggestionCoordinator (per-field debounced sessions)

Modules:
    - levels: Hierarchy levels, defaults and fallback loading
    - config: Per-session configuration
    - snapshot_model: Entries, metadata and snapshots
    - strictness: Boundary-based strictness resolution
    - cascade_state: The value/metadata store
    - read_only: Read-only gating and parent lookups
    - suggestions: Debounced search coordination
    - validation: Submission checks for strict fields
    - engine: The facade wiring everything together
"""

# Levels and configuration
from addresscascade.levels import (
    HierarchyLevel,
    LevelChain,
    DEFAULT_HIERARCHY_LEVELS,
    load_hierarchy_levels,
)
from addresscascade.config import CascadeConfig

# Shared types
from addresscascade.snapshot_model import (
    HierarchyEntry,
    FieldEntryState,
    FieldMetadata,
    CascadeSnapshot,
)

# Components
from addresscascade.strictness import resolve_strictness, strict_field_keys
from addresscascade.cascade_state import CascadeStateStore
from addresscascade.read_only import (
    is_read_only,
    read_only_map,
    find_parent_field,
    get_parent_stable_id,
    display_levels,
)
from addresscascade.suggestions import SuggestionCoordinator, SuggestionSession
from addresscascade.validation import SELECT_FROM_DROPDOWN, FieldError, has_identifier, validate_strict_fields
from addresscascade.engine import AddressHierarchyEngine

# Errors
from addresscascade.exceptions import AddressCascadeError, ConfigurationError, UnknownFieldError

__all__ = [
    'HierarchyLevel',
    'LevelChain',
    'DEFAULT_HIERARCHY_LEVELS',
    'load_hierarchy_levels',
    'CascadeConfig',
    'HierarchyEntry',
    'FieldEntryState',
    'FieldMetadata',
    'CascadeSnapshot',
    'resolve_strictness',
    'strict_field_keys',
    'CascadeStateStore',
    'is_read_only',
    'read_only_map',
    'find_parent_field',
    'get_parent_stable_id',
    'display_levels',
    'SuggestionCoordinator',
    'SuggestionSession',
    'SELECT_FROM_DROPDOWN',
    'FieldError',
    'has_identifier',
    'validate_strict_fields',
    'AddressHierarchyEngine',
    'AddressCascadeError',
    'ConfigurationError',
    'UnknownFieldError',
]

__version__ = '0.1.0'
__description__ = 'Address-hierarchy cascade engine for registration forms'
