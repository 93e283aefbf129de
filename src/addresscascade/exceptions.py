"""Custom exceptions."""


class AddressCascadeError(Exception):
    """Base exception for address cascade errors."""


class ConfigurationError(AddressCascadeError):
    """Raised when a hierarchy level list cannot form a valid ordered chain."""


class UnknownFieldError(AddressCascadeError, KeyError):
    """Raised when an operation references a field key absent from the configured levels."""

    def __init__(self, field_key: str):
        super().__init__(field_key)
        self.field_key = field_key

    def __str__(self) -> str:
        return f"Unknown address field: {self.field_key!r}"
