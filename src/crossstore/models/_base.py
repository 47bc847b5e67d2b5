"""Base model for crossstore wire and storage records.

Every model inherits from :class:`CrossStoreModel`, which maps the
camelCase keys used on the wire (``expiresAt``, ``getAllKeys``) to
snake_case fields and accepts either spelling on input.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CrossStoreModel(BaseModel):
    """Frozen base model with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump into a JSON-compatible dict using wire (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
