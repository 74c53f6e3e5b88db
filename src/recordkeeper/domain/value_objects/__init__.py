"""Domain value objects."""

from recordkeeper.domain.value_objects.album_id_policy import (
    is_manual_id,
    select_canonical,
)
from recordkeeper.domain.value_objects.album_identity import (
    basic_normalize_key,
    normalize_key,
)
from recordkeeper.domain.value_objects.stored_field import (
    INHERITED,
    Inherited,
    Override,
    StoredField,
    from_column,
)

__all__ = [
    "INHERITED",
    "Inherited",
    "Override",
    "StoredField",
    "basic_normalize_key",
    "from_column",
    "is_manual_id",
    "normalize_key",
    "select_canonical",
]
