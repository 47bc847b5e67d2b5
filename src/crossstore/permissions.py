"""Origin allow-list evaluation for the hub."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from crossstore._constants import WILDCARD
from crossstore.exceptions import CrossStoreConfigError
from crossstore.models.envelope import Operation
from crossstore.models.permission import PermissionRule


def coerce_rule(rule: PermissionRule | Mapping[str, Any]) -> PermissionRule:
    if isinstance(rule, PermissionRule):
        return rule
    try:
        return PermissionRule.model_validate(rule)
    except ValidationError as exc:
        raise CrossStoreConfigError(f"Invalid permission rule {rule!r}: {exc}") from exc


class PermissionMatcher:
    """Default-deny matcher over an ordered list of :class:`PermissionRule`.

    Rules are checked in declaration order and the first rule that matches
    both the origin and the operation wins.  The rule list is copied into
    a tuple at construction and never changes afterwards, so one matcher
    can be shared freely.
    """

    def __init__(self, rules: Iterable[PermissionRule | Mapping[str, Any]]) -> None:
        self._rules: tuple[PermissionRule, ...] = tuple(coerce_rule(rule) for rule in rules)

    @property
    def rules(self) -> tuple[PermissionRule, ...]:
        return self._rules

    def is_allowed(self, origin: str, operation: str) -> bool:
        for rule in self._rules:
            if rule.matches_origin(origin) and rule.grants(operation):
                return True
        return False

    def allowed_operations(self, origin: str) -> frozenset[str]:
        """Union of the operations any rule grants to *origin*."""
        granted: set[str] = set()
        for rule in self._rules:
            if not rule.matches_origin(origin):
                continue
            if WILDCARD in rule.allow:
                return frozenset(op.value for op in Operation)
            granted.update(rule.allow)
        return frozenset(granted)
