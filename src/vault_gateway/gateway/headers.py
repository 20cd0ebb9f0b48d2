"""Header policy for requests forwarded upstream."""

from __future__ import annotations

import base64
import binascii
import json
import re
from collections.abc import Mapping

from vault_gateway.transport.messages import Headers

# Never forwarded: they describe the inbound hop or the caller's origin.
# httpx frames the buffered body itself, so inbound framing headers go too.
ALWAYS_DROPPED_HEADERS = frozenset(
    {
        "host",
        "content-length",
        "connection",
        "origin",
        "referer",
        "transfer-encoding",
        "te",
        "upgrade",
        "keep-alive",
    }
)

TARGET_AUTHORIZATION_HEADER = "x-target-authorization"

_JWT_BEARER_RE = re.compile(r"^Bearer\s+([A-Za-z0-9_-]+)\.([A-Za-z0-9_-]+)\.[A-Za-z0-9_-]+$")


def build_forward_headers(
    inbound: Headers | Mapping[str, str],
    omit_authorization: bool = False,
    omit_cookies: bool = False,
) -> dict[str, str]:
    """Derive the upstream header set from the inbound headers.

    Names are lowercased. Repeated inbound headers are joined with ``", "``.
    """
    if not isinstance(inbound, Headers):
        inbound = Headers(inbound)

    forward: dict[str, str] = {}
    for name in inbound:
        if name in ALWAYS_DROPPED_HEADERS:
            continue
        if omit_authorization and name == "authorization":
            continue
        if omit_cookies and name == "cookie":
            continue
        forward[name] = ", ".join(inbound.get_list(name))
    return forward


def apply_target_authorization(inbound: Headers, forward: dict[str, str]) -> None:
    """Install ``X-Target-Authorization`` as the outgoing ``Authorization``."""
    forward.pop(TARGET_AUTHORIZATION_HEADER, None)
    values = inbound.get_list(TARGET_AUTHORIZATION_HEADER)
    if values and values[0]:
        forward["authorization"] = values[0]


def is_hosted_auth_bearer(value: str) -> bool:
    """Return True if ``value`` is a bearer JWT issued by the hosted auth provider."""
    match = _JWT_BEARER_RE.match(value)
    if not match:
        return False
    segment = match.group(2)
    padded = segment + "=" * (-len(segment) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return False
    if not isinstance(payload, dict):
        return False
    return "supabase" in str(payload.get("iss") or "")
