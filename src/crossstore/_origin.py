"""Origin normalization and origin-pattern matching."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from crossstore._constants import DEFAULT_PORTS, WILDCARD

_ANY_PORT = -1


def _format_host(host: str) -> str:
    return f"[{host}]" if ":" in host else host


def split_origin(url: str) -> tuple[str, str, int | None]:
    """Split *url* into ``(scheme, host, port)``.

    Scheme and host are lower-cased.  ``port`` is ``None`` when absent or
    equal to the scheme's default port.

    Raises :class:`ValueError` when the URL has no scheme or host.
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    host = parts.hostname
    if not scheme or not host:
        raise ValueError(f"Cannot derive an origin from {url!r}")
    port = parts.port
    if port is not None and DEFAULT_PORTS.get(scheme) == port:
        port = None
    return scheme, host.lower(), port


def origin_of(url: str) -> str:
    """Return the normalized ``scheme://host[:port]`` origin of *url*."""
    scheme, host, port = split_origin(url)
    origin = f"{scheme}://{_format_host(host)}"
    if port is not None:
        origin = f"{origin}:{port}"
    return origin


@dataclass(frozen=True, slots=True)
class OriginPattern:
    """Parsed origin pattern.

    Supported forms::

        *                         any origin
        https://app.example.com   exact origin
        https://*.example.com     any subdomain, https only, default port
        *.example.com             any subdomain, any scheme, default port
        http://localhost:*        any port
    """

    scheme: str | None
    host: str
    port: int | None
    wildcard_host: bool = False
    any_origin: bool = False

    @classmethod
    def parse(cls, pattern: str) -> OriginPattern:
        text = pattern.strip()
        if not text:
            raise ValueError("Origin pattern is empty")
        if text == WILDCARD:
            return cls(scheme=None, host="", port=None, any_origin=True)

        scheme: str | None = None
        rest = text
        if "://" in text:
            scheme_text, rest = text.split("://", 1)
            scheme = scheme_text.lower() or None
        rest = rest.split("/", 1)[0]

        host, port = rest, None
        if not host.endswith("]"):
            head, sep, maybe_port = host.rpartition(":")
            if sep:
                host = head
                if maybe_port == WILDCARD:
                    port = _ANY_PORT
                elif maybe_port.isdigit():
                    port = int(maybe_port)
                else:
                    raise ValueError(f"Invalid port in origin pattern {pattern!r}")
        host = host.strip("[]").lower()
        if port is not None and scheme is not None and DEFAULT_PORTS.get(scheme) == port:
            port = None

        wildcard_host = host.startswith("*.")
        if not host or (WILDCARD in host and not wildcard_host) or WILDCARD in host[2:]:
            raise ValueError(f"Invalid host in origin pattern {pattern!r}")
        return cls(scheme=scheme, host=host[1:] if wildcard_host else host, port=port, wildcard_host=wildcard_host)

    def matches(self, origin: str) -> bool:
        if self.any_origin:
            return True
        try:
            scheme, host, port = split_origin(origin)
        except ValueError:
            return False

        if self.scheme is not None and self.scheme != scheme:
            return False

        if self.wildcard_host:
            # host keeps the leading dot, so the bare domain never matches
            if not host.endswith(self.host) or len(host) <= len(self.host):
                return False
        elif host != self.host:
            return False

        if self.port == _ANY_PORT:
            return True
        if self.port is None:
            return port is None
        effective = port if port is not None else DEFAULT_PORTS.get(scheme)
        return effective == self.port
