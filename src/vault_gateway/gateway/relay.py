"""Relay an upstream httpx response back to the caller."""

from __future__ import annotations

import logging

import httpx

from vault_gateway.transport.messages import OutboundResponse

logger = logging.getLogger(__name__)

SAFE_RESPONSE_HEADERS = frozenset({"content-type", "cache-control", "etag", "last-modified"})


def select_response_headers(
    upstream_headers: httpx.Headers, allow_set_cookie: bool = False
) -> list[tuple[str, str]]:
    """Return the upstream headers that are safe to pass back to the caller."""
    relayed: list[tuple[str, str]] = []
    for name, value in upstream_headers.multi_items():
        lowered = name.lower()
        if lowered in SAFE_RESPONSE_HEADERS or (allow_set_cookie and lowered == "set-cookie"):
            relayed.append((lowered, value))
    return relayed


def _is_json(content_type: str) -> bool:
    return "application/json" in content_type.lower()


async def relay_response(
    upstream: httpx.Response, allow_set_cookie: bool = False
) -> OutboundResponse:
    """Build an ``OutboundResponse`` from a streamed upstream response.

    JSON bodies are read fully and passed through as text. Any other body is
    streamed unmodified; the upstream response is closed when the stream ends.
    """
    headers = select_response_headers(upstream.headers, allow_set_cookie)
    content_type = upstream.headers.get("content-type", "")

    if _is_json(content_type) or upstream.request.method == "HEAD":
        try:
            body = await upstream.aread()
        finally:
            await upstream.aclose()
        return OutboundResponse(status=upstream.status_code, headers=headers, body=body)

    return OutboundResponse(
        status=upstream.status_code,
        headers=headers,
        stream=upstream.aiter_bytes(),
        on_close=upstream.aclose,
    )
