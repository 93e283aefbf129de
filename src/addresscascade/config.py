"""Per-session cascade configuration."""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.2
DEFAULT_SEARCH_LIMIT = 20


@dataclass(frozen=True)
class CascadeConfig:
    """Configuration supplied once per registration session.

    display_top_down: Root rendered before leaves; enables read-only gating
                      and parent-narrowed searches.
    strict_from_level: Boundary level; it and every level above it must be
                       picked from the hierarchy. None disables strictness.
    """
    display_top_down: bool = False
    strict_from_level: Optional[str] = None
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    search_limit: int = DEFAULT_SEARCH_LIMIT

    def __post_init__(self):
        if self.debounce_seconds < 0:
            raise ValueError(f"debounce_seconds must be >= 0, got {self.debounce_seconds}")
        if self.search_limit < 1:
            raise ValueError(f"search_limit must be >= 1, got {self.search_limit}")

    @classmethod
    def from_registration_config(cls, registration_config: Optional[Mapping[str, Any]]) -> 'CascadeConfig':
        """Read patientInformation.addressHierarchy from a registration config.

        Missing sections fall back to defaults (bottom-up display, no boundary).
        """
        patient_information = (registration_config or {}).get('patientInformation') or {}
        hierarchy = patient_information.get('addressHierarchy') or {}
        if not hierarchy:
            logger.debug("No addressHierarchy section in registration config, using defaults")

        return cls(
            display_top_down=bool(hierarchy.get('showAddressFieldsTopDown', False)),
            strict_from_level=hierarchy.get('strictAutocompleteFromLevel') or None,
        )
