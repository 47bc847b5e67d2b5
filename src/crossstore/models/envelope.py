"""Channel envelopes exchanged between client and hub."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import ConfigDict, Field

from crossstore.models._base import CrossStoreModel


class Operation(StrEnum):
    GET = "get"
    SET = "set"
    DELETE = "delete"
    GET_ALL_KEYS = "getAllKeys"
    CLEAR = "clear"


class ControlType(StrEnum):
    READY = "ready"
    POLL = "poll"


class ControlMessage(CrossStoreModel):
    """Handshake envelope. Carries neither an id nor an operation."""

    type: ControlType


class RequestMessage(CrossStoreModel):
    """Client → hub request."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    operation: Operation
    args: list[Any] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        # args are user data; None entries are meaningful and must survive
        return {"id": self.id, "operation": self.operation.value, "args": list(self.args)}


class ErrorInfo(CrossStoreModel):
    code: str
    message: str = ""


class ResponseMessage(CrossStoreModel):
    """Hub → client reply: exactly one of ``result`` / ``error`` is meaningful."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    result: Any = None
    error: ErrorInfo | None = None

    def to_wire(self) -> dict[str, Any]:
        if self.error is not None:
            return {"id": self.id, "error": self.error.to_wire()}
        # result may legitimately be None (absent key), so keep it explicit
        return {"id": self.id, "result": self.result}


def control_type(raw: Any) -> ControlType | None:
    """Return the control type of *raw*, or ``None`` if it is not a control message."""
    if not isinstance(raw, dict) or "id" in raw:
        return None
    value = raw.get("type")
    if not isinstance(value, str):
        return None
    try:
        return ControlType(value)
    except ValueError:
        return None
