"""Upstream host allow-list for the forwarding endpoints."""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlparse

_ALLOWED_SCHEMES = frozenset({"http", "https"})


def _normalize_host(host: str) -> str:
    # urlparse reports IPv6 literals without brackets, so "[::1]" is stored as "::1".
    host = host.strip().lower()
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host


class TargetAllowlist:
    """Exact-hostname allow-list.

    An empty list is *open mode*: every http(s) URL is accepted. There is no
    wildcard or subdomain matching.
    """

    def __init__(self, hosts: Iterable[str] = ()) -> None:
        self._hosts = frozenset(
            normalized for normalized in (_normalize_host(host) for host in hosts) if normalized
        )

    @property
    def is_open(self) -> bool:
        return not self._hosts

    @property
    def hosts(self) -> frozenset[str]:
        return self._hosts

    def is_allowed(self, url: str) -> bool:
        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError:
            return False
        if parsed.scheme.lower() not in _ALLOWED_SCHEMES:
            return False
        if not hostname:
            return False
        if self.is_open:
            return True
        return hostname.lower() in self._hosts
