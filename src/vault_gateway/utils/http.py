"""Shared HTTP utilities."""

from __future__ import annotations

from urllib.parse import urlparse

_BASE_URL_ALLOWED_SCHEMES = frozenset({"http", "https"})


def first_forwarded_value(value: str | None) -> str | None:
    """Extract the first value from a comma-separated forwarded header.

    Used with X-Forwarded-For, X-Forwarded-Host, X-Forwarded-Proto, etc.
    """
    if not value:
        return None
    first = value.split(",", 1)[0].strip()
    return first or None


def normalize_base_url(value: str) -> str:
    """Normalize and validate an externally visible base URL (no trailing slash)."""
    candidate = value.strip()
    if not candidate:
        raise ValueError("base URL must not be empty")

    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in _BASE_URL_ALLOWED_SCHEMES:
        raise ValueError("base URL must use http or https")
    if not parsed.netloc:
        raise ValueError("base URL must include host")
    if parsed.query or parsed.fragment:
        raise ValueError("base URL must not include query or fragment")
    if parsed.username or parsed.password:
        raise ValueError("base URL must not include userinfo")

    normalized_path = parsed.path.rstrip("/")
    return f"{parsed.scheme.lower()}://{parsed.netloc}{normalized_path}"


def is_absolute_url(value: str) -> bool:
    """Return True if ``value`` parses as a URL with both scheme and host."""
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc)
