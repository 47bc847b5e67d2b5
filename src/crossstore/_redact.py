"""Helpers for safe debug logging.

Stored values are application data the hub has no business printing.
This module masks payload-bearing fields before envelopes reach DEBUG
logs, unless the caller explicitly opts into payload logging.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "args",
        "result",
        "value",
    }
)


def redact_for_log(value: Any, *, max_string: int = 512, reveal: bool = False, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs.

    With ``reveal=True`` nothing is masked, but long strings are still
    truncated.
    """
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, bytes):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if not reveal and key.lower() in _SENSITIVE_VALUE_KEYS:
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, reveal=reveal, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, reveal=reveal, _depth=_depth + 1) for v in value]

    return repr(value)
