"""
Base model for entities decoded from REST responses.

Entities are pydantic models. Decoding failures are reported as ``None`` so
that list decoding can skip malformed elements without raising.
"""

from collections.abc import Mapping
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

E = TypeVar("E", bound="RestEntity")


class RestEntity(BaseModel):
    """
    Decoded domain object.

    Subclasses declare fields as usual. ``key_field`` names the field used as
    the cache identity; set it to ``None`` for entities that are never cached.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    key_field: ClassVar[str | None] = "id"

    @classmethod
    def from_json(cls: type[E], data: Any) -> E | None:
        """Build an entity from one JSON object, or None if it does not fit."""
        if not isinstance(data, Mapping) or not data:
            return None
        try:
            return cls.model_validate(data)
        except ValidationError:
            return None

    def cache_key(self) -> Any:
        if self.key_field is None:
            return None
        return getattr(self, self.key_field, None)

    def update_from(self, other: "RestEntity") -> None:
        """Absorb every field of ``other`` (last decode wins)."""
        for name in type(self).model_fields:
            setattr(self, name, getattr(other, name))
