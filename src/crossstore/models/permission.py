"""Permission rule model."""

from __future__ import annotations

import re
from typing import Any

from pydantic import ConfigDict, PrivateAttr, field_validator

from crossstore._constants import WILDCARD
from crossstore._origin import OriginPattern
from crossstore.models._base import CrossStoreModel
from crossstore.models.envelope import Operation

_KNOWN = frozenset(op.value for op in Operation) | {WILDCARD}


class PermissionRule(CrossStoreModel):
    """Grants the operations in ``allow`` to origins matching ``origin``.

    ``origin`` is either an origin pattern string (see
    :class:`~crossstore._origin.OriginPattern`) or a compiled regular
    expression searched against the caller's origin.
    """

    model_config = ConfigDict(extra="forbid")

    origin: str | re.Pattern[str]
    allow: frozenset[str]

    _pattern: OriginPattern | None = PrivateAttr(default=None)

    @field_validator("origin")
    @classmethod
    def _validate_origin(cls, value: str | re.Pattern[str]) -> str | re.Pattern[str]:
        if isinstance(value, str):
            OriginPattern.parse(value)
        return value

    @field_validator("allow")
    @classmethod
    def _validate_allow(cls, value: frozenset[str]) -> frozenset[str]:
        unknown = sorted(value - _KNOWN)
        if unknown:
            raise ValueError(f"Unknown operations in allow-list: {', '.join(unknown)}")
        return value

    def model_post_init(self, _context: Any) -> None:
        if isinstance(self.origin, str):
            self._pattern = OriginPattern.parse(self.origin)

    def matches_origin(self, origin: str) -> bool:
        if isinstance(self.origin, re.Pattern):
            return self.origin.search(origin) is not None
        pattern = self._pattern or OriginPattern.parse(self.origin)
        return pattern.matches(origin)

    def grants(self, operation: str) -> bool:
        return WILDCARD in self.allow or operation in self.allow
