from __future__ import annotations

import pytest

from crossstore._origin import OriginPattern, origin_of


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://Hub.Example.com/test/hub.html?x=1#frag", "https://hub.example.com"),
        ("https://hub.example.com:443/", "https://hub.example.com"),
        ("http://localhost:80", "http://localhost"),
        ("http://localhost:9999/hub", "http://localhost:9999"),
        ("http://[::1]:8080/", "http://[::1]:8080"),
        ("local://app", "local://app"),
    ],
)
def test_origin_of_normalizes(url: str, expected: str) -> None:
    assert origin_of(url) == expected


@pytest.mark.parametrize("url", ["", "hub.example.com", "https://", "/relative/path"])
def test_origin_of_rejects_urls_without_origin(url: str) -> None:
    with pytest.raises(ValueError):
        origin_of(url)


def test_subdomain_wildcard_excludes_bare_domain() -> None:
    pattern = OriginPattern.parse("*.example.com")

    assert pattern.matches("https://a.example.com")
    assert pattern.matches("http://a.b.example.com")
    assert not pattern.matches("https://example.com")
    assert not pattern.matches("https://badexample.com")
    assert not pattern.matches("https://a.example.com.evil.org")


def test_pattern_scheme_and_port() -> None:
    https_only = OriginPattern.parse("https://*.example.com")
    assert https_only.matches("https://app.example.com")
    assert not https_only.matches("http://app.example.com")
    # no port in the pattern means the default port only
    assert not https_only.matches("https://app.example.com:8443")

    explicit = OriginPattern.parse("http://localhost:3000")
    assert explicit.matches("http://localhost:3000")
    assert not explicit.matches("http://localhost:3001")
    assert not explicit.matches("http://localhost")

    any_port = OriginPattern.parse("http://localhost:*")
    assert any_port.matches("http://localhost")
    assert any_port.matches("http://localhost:5173")

    default_port = OriginPattern.parse("https://hub.example.com:443")
    assert default_port.matches("https://hub.example.com")


def test_any_origin_pattern() -> None:
    pattern = OriginPattern.parse("*")
    assert pattern.matches("https://anything.test")
    assert pattern.matches("not an origin")


@pytest.mark.parametrize("pattern", ["", "https://ex*ample.com", "https://*", "*.*.example.com", "http://host:abc"])
def test_invalid_patterns_rejected(pattern: str) -> None:
    with pytest.raises(ValueError):
        OriginPattern.parse(pattern)


def test_unparseable_origin_never_matches() -> None:
    assert not OriginPattern.parse("https://example.com").matches("garbage")
