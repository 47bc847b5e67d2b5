"""Wire envelopes, stored entries and permission rules."""

from crossstore.models.entry import Entry
from crossstore.models.envelope import (
    ControlMessage,
    ControlType,
    ErrorInfo,
    Operation,
    RequestMessage,
    ResponseMessage,
    control_type,
)
from crossstore.models.permission import PermissionRule

__all__ = [
    "ControlMessage",
    "ControlType",
    "Entry",
    "ErrorInfo",
    "Operation",
    "PermissionRule",
    "RequestMessage",
    "ResponseMessage",
    "control_type",
]
