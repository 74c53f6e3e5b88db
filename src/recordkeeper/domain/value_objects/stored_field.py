"""Tagged per-row field values for compressed list rows.

Hey future me - a NULL column in list_items does NOT mean "empty"! It means
"inherit from the canonical album". We model that explicitly so read/write code
can't confuse "no override" with "override to an empty string":

    Inherited()          -> stored as NULL, read falls back to albums.<field>
    Override(value)      -> stored verbatim, read returns value as-is

The storage layer still serializes to a nullable column (to_column/from_column).
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Inherited:
    """Row has no override - use the canonical album's value."""

    def to_column(self) -> None:
        return None

    def resolve(self, canonical_value: Any) -> Any:
        return canonical_value


@dataclass(frozen=True, slots=True)
class Override:
    """Row deliberately overrides the canonical value."""

    value: Any

    def to_column(self) -> Any:
        return self.value

    def resolve(self, canonical_value: Any) -> Any:
        return self.value


StoredField = Inherited | Override

INHERITED = Inherited()


def from_column(value: Any) -> StoredField:
    """Decode a nullable list_items column into a tagged value."""
    if value is None:
        return INHERITED
    return Override(value)
