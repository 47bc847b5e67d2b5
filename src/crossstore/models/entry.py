"""Stored entry record written by the TTL store."""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict

from crossstore.models._base import CrossStoreModel


class Entry(CrossStoreModel):
    """A value plus its optional absolute expiry (epoch milliseconds)."""

    model_config = ConfigDict(extra="forbid")

    value: Any = None
    expires_at: int | None = None

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at is not None and now_ms >= self.expires_at

    def to_record(self) -> dict[str, Any]:
        # exclude_none would also drop a stored None value
        return {"value": self.value, "expiresAt": self.expires_at}
