"""tokentrim exception hierarchy.

All tokentrim-specific exceptions inherit from TokentrimError.
"""

from dataclasses import dataclass


class TokentrimError(Exception):
    """Base exception for all tokentrim errors."""


@dataclass
class ItemFailure:
    """A rejected item in a record call."""
    position: int
    reason: str


class InvalidInputError(TokentrimError, ValueError):
    """Raised when recorded items are malformed.

    Valid items from the same call have already been appended when this
    is raised; ``failures`` lists the positions that were rejected.
    """

    def __init__(self, failures: list[ItemFailure]) -> None:
        self.failures = failures
        details = "; ".join(f"#{f.position}: {f.reason}" for f in failures)
        super().__init__(f"Rejected {len(failures)} item(s): {details}")

    @property
    def positions(self) -> list[int]:
        return [f.position for f in self.failures]


class ConfigurationError(TokentrimError, ValueError):
    """Raised when a compaction config holds out-of-range values."""

    def __init__(self, field_name: str, value: object, expected: str) -> None:
        self.field_name = field_name
        self.value = value
        super().__init__(f"Invalid {field_name}={value!r}: expected {expected}")
