from __future__ import annotations

import re

import pytest

from crossstore.exceptions import CrossStoreConfigError
from crossstore.models.permission import PermissionRule
from crossstore.permissions import PermissionMatcher


def test_default_deny_without_rules() -> None:
    matcher = PermissionMatcher([])
    assert not matcher.is_allowed("https://app.example.com", "get")


def test_exact_origin_grants_listed_operations_only() -> None:
    matcher = PermissionMatcher([{"origin": "https://app.example.com", "allow": ["get", "set"]}])

    assert matcher.is_allowed("https://app.example.com", "get")
    assert matcher.is_allowed("https://app.example.com", "set")
    assert not matcher.is_allowed("https://app.example.com", "delete")
    assert not matcher.is_allowed("https://other.example.com", "get")


def test_wildcard_subdomain_needs_separate_rule_for_bare_domain() -> None:
    matcher = PermissionMatcher([{"origin": "*.example.com", "allow": ["get"]}])
    assert matcher.is_allowed("https://a.example.com", "get")
    assert not matcher.is_allowed("https://example.com", "get")

    with_bare = PermissionMatcher(
        [
            {"origin": "*.example.com", "allow": ["get"]},
            {"origin": "https://example.com", "allow": ["get"]},
        ]
    )
    assert with_bare.is_allowed("https://example.com", "get")


def test_operation_wildcard_grants_everything() -> None:
    matcher = PermissionMatcher([{"origin": "https://admin.example.com", "allow": ["*"]}])

    for operation in ("get", "set", "delete", "getAllKeys", "clear"):
        assert matcher.is_allowed("https://admin.example.com", operation)


def test_later_rules_still_apply_when_first_match_lacks_operation() -> None:
    matcher = PermissionMatcher(
        [
            {"origin": "*.example.com", "allow": ["get"]},
            {"origin": "https://writer.example.com", "allow": ["set"]},
        ]
    )

    assert matcher.is_allowed("https://writer.example.com", "get")
    assert matcher.is_allowed("https://writer.example.com", "set")
    assert not matcher.is_allowed("https://reader.example.com", "set")


def test_regex_rule_is_searched_against_origin() -> None:
    rule = PermissionRule(origin=re.compile(r"\.example\.com$"), allow=frozenset({"get"}))
    matcher = PermissionMatcher([rule])

    assert matcher.is_allowed("https://a.example.com", "get")
    assert not matcher.is_allowed("https://a.example.com.evil.org", "get")


def test_regex_and_pattern_rules_dispatch_by_origin_type() -> None:
    regex_rule = PermissionRule(origin=re.compile(r"^https://app\."), allow=frozenset({"get"}))
    pattern_rule = PermissionRule(origin="https://*.example.com", allow=frozenset({"get"}))

    assert regex_rule.matches_origin("https://app.example.org")
    assert not regex_rule.matches_origin("http://app.example.org")
    assert pattern_rule.matches_origin("https://app.example.com")
    assert not pattern_rule.matches_origin("http://app.example.com")


def test_allowed_operations_unions_matching_rules() -> None:
    matcher = PermissionMatcher(
        [
            {"origin": "*.example.com", "allow": ["get"]},
            {"origin": "https://writer.example.com", "allow": ["set", "delete"]},
            {"origin": "https://other.test", "allow": ["*"]},
        ]
    )

    assert matcher.allowed_operations("https://writer.example.com") == {"get", "set", "delete"}
    assert matcher.allowed_operations("https://nobody.test") == frozenset()
    assert "clear" in matcher.allowed_operations("https://other.test")


def test_unknown_operation_in_rule_is_rejected() -> None:
    with pytest.raises(CrossStoreConfigError):
        PermissionMatcher([{"origin": "https://app.example.com", "allow": ["get", "drop"]}])


def test_invalid_origin_pattern_is_rejected() -> None:
    with pytest.raises(CrossStoreConfigError):
        PermissionMatcher([{"origin": "https://ex*ample.com", "allow": ["get"]}])


def test_rules_are_immutable() -> None:
    source = [{"origin": "https://app.example.com", "allow": ["get"]}]
    matcher = PermissionMatcher(source)
    source.clear()

    assert matcher.is_allowed("https://app.example.com", "get")
    assert isinstance(matcher.rules, tuple)
